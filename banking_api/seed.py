"""
Demo data seeding

On an empty user table, creates two administrators and ten customers, each
customer with one funded account. Run at startup when
``BANKING_SEED_DEMO_DATA`` is enabled, or directly with
``python -m banking_api.seed``.
"""

from decimal import Decimal

from .config import get_config
from .logging_config import get_logger, setup_logging
from .system import BankingSystem
from .users import Role

ADMIN_COUNT = 2
CUSTOMER_COUNT = 10
ADMIN_PASSWORD = "admin123"
CUSTOMER_PASSWORD = "senha123"
FIRST_ACCOUNT_NUMBER = 1000000001

logger = get_logger("banking.seed")


def seed_demo_data(system: BankingSystem) -> bool:
    """
    Populate an empty system with demo users and accounts

    Returns:
        True if data was created, False if users already existed
    """
    if system.user_manager.count_users() > 0:
        logger.info("Users already present, skipping demo data")
        return False

    opening_balance = Decimal(system.config.seed_opening_balance)

    for i in range(1, ADMIN_COUNT + 1):
        system.user_manager.create_user(f"admin{i}", ADMIN_PASSWORD, Role.ADMIN,
                                        created_by="seed")

    for i in range(1, CUSTOMER_COUNT + 1):
        username = f"cliente{i}"
        system.user_manager.create_user(username, CUSTOMER_PASSWORD, Role.CUSTOMER,
                                        created_by="seed")
        system.account_manager.create_account(
            owner_username=username,
            holder_name=f"Cliente {i}",
            tax_id=f"{100000000 + i}",
            account_number=str(FIRST_ACCOUNT_NUMBER + i - 1),
            initial_balance=opening_balance,
            created_by="seed"
        )

    logger.info(f"Seeded {ADMIN_COUNT} admins and {CUSTOMER_COUNT} customers with accounts")
    return True


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format)
    system = BankingSystem(config)
    try:
        seed_demo_data(system)
    finally:
        system.close()
