from app import app, db, Cycle
from config import FARM_HOUSE_COUNTS

def init_db():
    with app.app_context():
        # Schema is normally managed by Flask-Migrate (flask db upgrade);
        # create_all covers a fresh sqlite file.
        db.create_all()

        for name, count in FARM_HOUSE_COUNTS.items():
            print(f"Farm {name}: {count} houses")

        print(f"Cycles on record: {Cycle.query.count()}")
        print("Database initialized.")

if __name__ == "__main__":
    init_db()
