"""
Constants used across the membership accounting engine.
"""

# Family plan discount applied to the whole group total
FAMILY_DISCOUNT_PERCENT = 30

# Fallback base due price when neither the settings table nor BASE_DUE_PRICE define one
DEFAULT_BASE_DUE_PRICE = 5000
BASE_DUE_PRICE_SETTING = "base_due_price"

# Dues fall due on this day of the billed month
DUE_DAY_OF_MONTH = 10

# Simulated payment gateway cards (last four digits)
APPROVED_TEST_CARDS = frozenset({"4242"})
DECLINED_TEST_CARDS = frozenset({"0002", "0000"})

MAX_PRACTICE_DESCRIPTION_LENGTH = 150

