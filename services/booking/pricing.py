"""
services/booking/pricing.py
Price breakdown for a prospective stay, as shown in the booking wizard.

Per night: calendar override price if the host set one for that date,
otherwise the nightly rate times the multiplier of the first season that
contains the date. Length-of-stay discounts apply to the subtotal and the
service fee is charged on the discounted subtotal.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from config.settings import settings
from services.booking.lifecycle import total_nights
from shared.models.models import ExperienceType, Host
from shared.schemas.schemas import CalendarEntry, SeasonalRate
from shared.utils.dates import ensure_utc, utcnow

CENT = Decimal("0.01")
WEEKLY_MIN_NIGHTS = 7
MONTHLY_MIN_NIGHTS = 28


class QuoteError(ValueError):
    """Stay rejected by the host's availability rules."""


@dataclass
class Quote:
    nights: int
    nightly: list[tuple[date, Decimal]] = field(default_factory=list)
    base_price: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    discount_type: Optional[str] = None
    service_fee: Decimal = Decimal("0")
    taxes: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _nightly_rate(host: Host, experience: ExperienceType) -> Decimal:
    if experience != ExperienceType.HOMESTAY:
        for offered in host.experiences:
            if offered.type == experience:
                return Decimal(str(offered.price))
    return Decimal(str(host.base_price))


def _season_multiplier(seasons: list[SeasonalRate], day: date) -> Decimal:
    for season in seasons:
        if season.start_date.date() <= day <= season.end_date.date():
            return Decimal(str(season.price_multiplier))
    return Decimal("1")


def quote(
    host: Host,
    experience: ExperienceType,
    check_in: datetime,
    check_out: datetime,
    now: Optional[datetime] = None,
) -> Quote:
    check_in, check_out = ensure_utc(check_in), ensure_utc(check_out)
    now = ensure_utc(now) if now else utcnow()

    if check_in <= now:
        raise QuoteError("Check-in date must be in the future")
    if check_out <= check_in:
        raise QuoteError("Check-out date must be after check-in date")
    if check_in > now + timedelta(days=host.booking_window):
        raise QuoteError(f"Bookings open at most {host.booking_window} days in advance")

    nights = total_nights(check_in, check_out)
    if nights < host.minimum_stay:
        raise QuoteError(f"Minimum stay is {host.minimum_stay} nights")
    if nights > host.maximum_stay:
        raise QuoteError(f"Maximum stay is {host.maximum_stay} nights")

    calendar = {
        entry.date: entry
        for entry in (CalendarEntry.model_validate(raw) for raw in host.availability_calendar or [])
    }
    seasons = [SeasonalRate.model_validate(raw) for raw in host.seasonal_rates or []]
    rate = _nightly_rate(host, experience)

    result = Quote(nights=nights)
    first_night = check_in.date()
    for offset in range(nights):
        day = first_night + timedelta(days=offset)
        override = calendar.get(day)
        if override is not None and not override.available:
            raise QuoteError("Selected dates are not available")
        if override is not None and override.price is not None:
            price = to_money(override.price)
        else:
            price = to_money(rate * _season_multiplier(seasons, day))
        result.nightly.append((day, price))

    result.base_price = sum((price for _, price in result.nightly), Decimal("0"))

    percent = Decimal("0")
    if nights >= MONTHLY_MIN_NIGHTS and host.monthly_discount:
        percent, result.discount_type = Decimal(str(host.monthly_discount)), "monthly"
    elif nights >= WEEKLY_MIN_NIGHTS and host.weekly_discount:
        percent, result.discount_type = Decimal(str(host.weekly_discount)), "weekly"
    result.discount = to_money(result.base_price * percent / 100)

    discounted = result.base_price - result.discount
    result.service_fee = to_money(discounted * Decimal(str(settings.SERVICE_FEE_PERCENT)) / 100)
    result.total = to_money(discounted + result.service_fee + result.taxes)
    return result
