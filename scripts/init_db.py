"""Initialize the surfacegen database."""

from src.surfacegen.config import EngineSettings
from src.surfacegen.db.db_init import create_db_engine, init_db


def main() -> None:
    settings = EngineSettings.build_default()
    init_db(create_db_engine(settings.database_url))
    print("Database initialized.")


if __name__ == "__main__":
    main()
