from .dates import parse_day_first_date
from .money import amount_polarity, parse_amount
from .text import mask_secret, normalize_text

__all__ = ["parse_day_first_date", "amount_polarity", "parse_amount", "mask_secret", "normalize_text"]
