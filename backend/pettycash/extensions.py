# Overview: Flask extension instances and the collaborator slots installed on app.extensions.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Keys under app.extensions for swappable collaborators (see create_app)
CLOCK_EXTENSION = "pettycash.clock"
POLICY_EXTENSION = "pettycash.policy"
NOTIFIER_EXTENSION = "pettycash.notifier"
