from contas.cli.app import main_menu
from contas.db import initialize_db
from contas.logging import configure_logging
from contas.settings import settings


def main() -> None:
    configure_logging()
    if settings.store_backend == "sqlalchemy":
        initialize_db()
    main_menu()


if __name__ == "__main__":
    main()
