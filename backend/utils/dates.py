from datetime import date, datetime


def parse_iso_date(value):
    """Parse a YYYY-MM-DD string into a date. Raises ValueError on bad input."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def today():
    """Current local date. Wrapped so tests can patch it."""
    return date.today()


def now():
    """Current UTC timestamp used for drop-off and pickup times."""
    return datetime.utcnow()


def calculate_age(date_of_birth, on=None):
    if date_of_birth is None:
        return None
    on = on or date.today()
    age = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age
