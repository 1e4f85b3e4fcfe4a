"""Create the database tables and, with --seed, a small demo data set.

    python -m consent_broker.init_db [--seed]

Seeding prints a development JWT for each demo principal, since credential
handling lives outside this service.
"""

import sys

from flask_jwt_extended import create_access_token
from sqlalchemy import inspect, select

from consent_broker.app import create_app
from consent_broker.database import config as database
from consent_broker.database.config import session_scope
from consent_broker.items import add_item, list_owner_items
from consent_broker.models.principal import Principal, PrincipalRole

DEMO_PRINCIPALS = [
    {"name": "Alice Provider", "email": "alice@provider.local", "role": PrincipalRole.PROVIDER},
    {"name": "Acme Bank", "email": "kyc@acmebank.local", "role": PrincipalRole.SEEKER},
    {"name": "Admin", "email": "admin@consent-broker.local", "role": PrincipalRole.ADMIN},
]


def seed(db):
    """Insert the demo principals and one inline item if they are missing."""
    principals = {}
    for fields in DEMO_PRINCIPALS:
        principal = db.execute(
            select(Principal).where(Principal.email == fields["email"])
        ).scalar_one_or_none()
        if principal is None:
            principal = Principal(public_key="demo-public-key", is_active=True, **fields)
            db.add(principal)
            db.flush()
        principals[fields["role"]] = principal
    db.commit()

    provider = principals[PrincipalRole.PROVIDER]
    if list_owner_items(db, provider.id):
        return principals
    add_item(
        db, provider.id,
        name="Passport number",
        item_type="text",
        encrypted_key="demo-wrapped-key",
        iv="demo-iv",
        encrypted_data="ZGVtby1jaXBoZXJ0ZXh0",
    )
    return principals


def main(argv):
    app = create_app()
    with app.app_context():
        table_names = inspect(database.engine).get_table_names()
        print(f"Tables in database: {table_names}")

        if "--seed" in argv:
            with session_scope() as db:
                principals = seed(db)
                for role, principal in principals.items():
                    token = create_access_token(identity=str(principal.id))
                    print(f"{role.value:<8} id={principal.id} token={token}")


if __name__ == "__main__":
    main(sys.argv[1:])
