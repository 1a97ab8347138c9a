"""
Row Normalizer

Converts raw export rows into ParsedTransaction models.

bePaid exports are inconsistent between merchant cabinets and
export dates: column names are Russian or English, numbers use
either decimal separator, dates come in two formats, and the
status column alone does not tell a declined payment from a
successful one. All of that is resolved here.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog
from pydantic import ValidationError

from bepaid_reconciler.models.transaction import NormalizedStatus, ParsedTransaction
from bepaid_reconciler.parsing.errors import NoTransactionsError


logger = structlog.get_logger()


# =============================================================================
# COLUMN ALIASES - Russian name first, English second
# =============================================================================

COLUMNS: dict[str, tuple[str, ...]] = {
    "uid": ("UID", "uid", "ID транзакции"),
    "status": ("Статус", "Status"),
    "transaction_type": ("Тип транзакции", "Transaction type"),
    "message": ("Сообщение", "Message"),
    "amount": ("Сумма", "Amount"),
    "card": ("Карта", "Card"),
    "payment_method": ("Способ оплаты", "Payment method"),
    "bepaid_order_id": ("ID заказа", "Order ID"),
    "currency": ("Валюта", "Currency"),
    "description": ("Описание", "Description"),
    "tracking_id": ("Трекинг ID", "Tracking ID"),
    "created_at": ("Дата создания", "Created at"),
    "paid_at": ("Дата оплаты", "Paid at"),
    "customer_email": ("E-mail", "Email"),
    "card_holder": ("Владелец карты", "Card holder"),
    "fee_percent": ("Комиссия,%", "Fee %"),
    "fee_amount": ("Комиссия за операцию", "Fee amount"),
    "total_fee": ("Сумма комиссий", "Total fee"),
    "transferred_amount": ("Перечисленная сумма", "Transferred amount"),
    "transferred_at": ("Дата перечисления", "Transferred at"),
    "valid_until": ("Действует до", "Valid until"),
    "shop_id": ("ID магазина", "Shop ID"),
    "shop_name": ("Магазин", "Shop"),
    "business_category": ("Категория бизнеса", "Business category"),
    "customer_name": ("Имя", "First name"),
    "customer_surname": ("Фамилия", "Last name"),
    "customer_address": ("Адрес", "Address"),
    "customer_country": ("Страна", "Country"),
    "customer_city": ("Город", "City"),
    "customer_zip": ("Индекс", "Zip"),
    "customer_state": ("Область", "State"),
    "customer_phone": ("Телефон", "Phone"),
    "ip_address": ("IP", "IP address"),
    "product_code": ("Код продукта", "Product code"),
    "card_valid_until": ("Карта действует", "Card valid until"),
    "card_bin": ("BIN карты", "Card BIN"),
    "card_bank": ("Банк", "Bank"),
    "card_bank_country": ("Страна банка", "Bank country"),
    "three_d_secure": ("3-D Secure", "3DS"),
    "avs_result": ("Результат AVS", "AVS result"),
    "fraud_result": ("Fraud", "Fraud result"),
    "auth_code": ("Код авторизации", "Auth code"),
    "rrn": ("RRN",),
    "reason": ("Причина", "Reason"),
}

# Plain text columns copied as-is
TEXT_FIELDS = (
    "bepaid_order_id", "description", "tracking_id", "card_holder",
    "message", "shop_id", "shop_name", "business_category",
    "customer_name", "customer_surname", "customer_address",
    "customer_country", "customer_city", "customer_zip", "customer_state",
    "customer_phone", "ip_address", "product_code", "card_valid_until",
    "card_bin", "card_bank", "card_bank_country", "avs_result",
    "fraud_result", "auth_code", "rrn", "reason",
)

DECLINE_KEYWORDS = (
    "declined", "отклон", "error", "insufficient", "reject",
    "fail", "ошибк", "denied", "refused", "cancel",
)

_RU_DATE = re.compile(r"(\d{2})\.(\d{2})\.(\d{4})\s+(\d{2}):(\d{2}):?(\d{2})?")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})\s+(\d{2}):(\d{2}):(\d{2})\s*([+-]\d{4})?")
_CARD_LAST4 = re.compile(r"(\d{4})\s*$")
_NUMBER_PREFIX = re.compile(r"^-?(\d+\.?\d*|\.\d+)")


def _get(row: dict[str, str], field: str) -> Optional[str]:
    """First non-empty value among the column aliases of a field."""
    for column in COLUMNS[field]:
        value = row.get(column)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_number(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a localized number.

    "1 234,56" -> 1234.56, "12.50 BYN" -> 12.50, "" -> None
    """
    if value is None or value == "":
        return None
    cleaned = re.sub(r"[^\d.-]", "", str(value).replace(",", ".", 1))
    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an export date.

    Accepts "DD.MM.YYYY HH:MM[:SS]" and "YYYY-MM-DD HH:MM:SS [+zzzz]".
    Other strings go through fromisoformat. The offset is dropped so
    every parsed date is naive wall-clock time of the export.
    """
    if not value:
        return None

    match = _RU_DATE.search(value)
    if match:
        day, month, year, hour, minute, second = match.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour), int(minute), int(second or 0),
            )
        except ValueError:
            return None

    match = _ISO_DATE.search(value)
    if match:
        year, month, day, hour, minute, second, _ = match.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour), int(minute), int(second),
            )
        except ValueError:
            return None

    try:
        return datetime.fromisoformat(value).replace(tzinfo=None)
    except ValueError:
        return None


def parse_three_d_secure(value: Optional[str]) -> Optional[bool]:
    if not value:
        return None
    lower = value.lower()
    if lower in ("да", "yes", "true", "1"):
        return True
    if lower in ("нет", "no", "false", "0"):
        return False
    return None


def normalize_status(
    status: str,
    transaction_type: str,
    message: str,
) -> NormalizedStatus:
    """
    Reduce the provider status to a NormalizedStatus.

    Priority: transaction type (refund, cancel), then decline words
    in the message, then the status column itself. A payment whose
    status says "successful" but whose message says "declined" is
    a failed payment.
    """
    status = status.lower()
    type_lower = transaction_type.lower()
    message = message.lower()

    if "Возврат" in transaction_type or "refund" in type_lower:
        return NormalizedStatus.REFUND
    if "Отмен" in transaction_type or "cancel" in type_lower:
        return NormalizedStatus.CANCEL
    if any(keyword in message for keyword in DECLINE_KEYWORDS):
        return NormalizedStatus.FAILED
    if (
        "неуспеш" in status
        or "ошибк" in status
        or status in ("failed", "error")
        or "fail" in status
    ):
        return NormalizedStatus.FAILED
    if status in ("успешно", "successful") or status.startswith("успеш"):
        return NormalizedStatus.SUCCESSFUL
    return NormalizedStatus.PENDING


def parse_row(row: dict[str, str]) -> Optional[ParsedTransaction]:
    """
    Normalize one export row.

    Returns:
        ParsedTransaction, or None when the row has no UID

    Raises:
        ValidationError: If a value violates the model constraints
    """
    uid = _get(row, "uid")
    if not uid:
        return None

    status_raw = _get(row, "status") or "Unknown"
    transaction_type = _get(row, "transaction_type") or "Платеж"
    message = _get(row, "message") or ""

    card_mask = _get(row, "card") or ""
    last4_match = _CARD_LAST4.search(card_mask)

    payment_method = (_get(row, "payment_method") or "").lower()
    card_brand = payment_method
    if card_mask.startswith("4"):
        card_brand = "visa"
    elif card_mask.startswith("5"):
        card_brand = "mastercard"

    fields = {field: _get(row, field) for field in TEXT_FIELDS}

    return ParsedTransaction(
        uid=uid,
        status=status_raw,
        status_normalized=normalize_status(status_raw, transaction_type, message),
        transaction_type=transaction_type,
        amount=parse_number(_get(row, "amount")) or Decimal("0"),
        currency=_get(row, "currency") or "BYN",
        created_at=parse_date(_get(row, "created_at")),
        paid_at=parse_date(_get(row, "paid_at")),
        transferred_at=parse_date(_get(row, "transferred_at")),
        valid_until=parse_date(_get(row, "valid_until")),
        customer_email=_get(row, "customer_email"),
        card_last4=last4_match.group(1) if last4_match else None,
        card_brand=card_brand or None,
        payment_method=payment_method or None,
        fee_percent=parse_number(_get(row, "fee_percent")),
        fee_amount=parse_number(_get(row, "fee_amount")),
        total_fee=parse_number(_get(row, "total_fee")),
        transferred_amount=parse_number(_get(row, "transferred_amount")),
        three_d_secure=parse_three_d_secure(_get(row, "three_d_secure")),
        **fields,
    )


def parse_rows(rows: list[dict[str, str]]) -> list[ParsedTransaction]:
    """
    Normalize every row of an export.

    Rows without a UID and rows that fail model validation are skipped.

    Raises:
        NoTransactionsError: If no row could be parsed
    """
    parsed: list[ParsedTransaction] = []
    for index, row in enumerate(rows):
        try:
            tx = parse_row(row)
        except ValidationError as e:
            logger.warning(
                "row_skipped",
                row_index=index,
                errors=e.error_count(),
            )
            continue
        if tx is not None:
            parsed.append(tx)

    if not parsed:
        raise NoTransactionsError(
            "Could not recognise any transactions. Check the file format."
        )
    return parsed


def is_fee_transaction(tx: ParsedTransaction) -> bool:
    """
    Whether a record is a service/fee row rather than a customer payment.

    Cancellations and non-payment types are fees. Refunds are not.
    Payments under 1.00 are card verification charges.
    """
    tx_type = (tx.transaction_type or "").lower()
    if "отмен" in tx_type or "cancel" in tx_type:
        return True
    if "возврат" in tx_type or "refund" in tx_type:
        return False
    is_payment_type = "платеж" in tx_type or "payment" in tx_type or tx_type == ""
    if not is_payment_type:
        return True
    return tx.amount < Decimal("1.0")
