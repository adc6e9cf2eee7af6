"""Utility script to populate the default admin and demo data for local environments."""

from organizador.db import init_db
from organizador.logging_config import configure_logging
from organizador.seed import ensure_default_admin, ensure_demo_data


def main() -> None:
	"""Initialise the database schema, the default admin and the sample academic data."""
	configure_logging()
	init_db()
	ensure_default_admin()
	ensure_demo_data()


if __name__ == "__main__":
	main()
