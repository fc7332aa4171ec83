import os
import sys

from dotenv import load_dotenv

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

load_dotenv(os.path.join(project_root, '.env'))

from database.connection import Base, engine
from database import models  # noqa: F401  (registers the meetings table)


def create_tables():
    if engine is None:
        print("Error: DATABASE_URL is not set (engine not configured).")
        sys.exit(1)

    try:
        print("Creating tables...")
        Base.metadata.create_all(bind=engine)
        print("\nCreated tables:")
        for table in Base.metadata.tables:
            print(f"  - {table}")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    create_tables()
