from church_admin import create_app
from church_admin.seed import seed_data, seed_roles
from flask.cli import with_appcontext
from flask_migrate import upgrade, migrate, init

app = create_app()

@app.cli.command("db-init")
@with_appcontext
def db_init():
    """Initializes migrations directory"""
    init()

@app.cli.command("db-migrate")
@with_appcontext
def db_migrate():
    """Creates a new migration"""
    migrate()

@app.cli.command("db-upgrade")
@with_appcontext
def db_upgrade():
    """Applies migrations"""
    upgrade()

@app.cli.command("seed-roles")
@with_appcontext
def seed_roles_command():
    """Creates the role rows"""
    seed_roles()

@app.cli.command("seed")
@with_appcontext
def seed_command():
    """Inserts roles, staff users and a sample child"""
    seed_data()
