from register_engine.cli import app

app(prog_name="register-engine")
