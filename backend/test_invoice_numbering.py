from datetime import datetime

from invoice_numbering import format_invoice_number, generate_invoice_number, sequence_key
from schemas import InvoiceSettings
from tenant_scope import TenantScope


def test_format_fills_placeholders():
    number = format_invoice_number(
        "{PREFIX}-{TENANT}-{YEAR}{MONTH}-{SEQ}", "INV", "demo-isp", datetime(2024, 2, 1), 7
    )
    assert number == "INV-DEMO-ISP-202402-0007"


def test_sequence_wider_than_padding_is_kept():
    assert format_invoice_number("{SEQ}", "INV", "x", datetime(2024, 2, 1), 12345) == "12345"


def test_sequence_key_leaves_seq_unfilled():
    key = sequence_key("{PREFIX}-{TENANT}-{YEAR}{MONTH}-{SEQ}", "INV", "demo-isp", datetime(2024, 11, 30))
    assert key == "INV-DEMO-ISP-202411-{SEQ}"


async def test_numbers_are_consecutive_within_a_month(scope):
    feb = datetime(2024, 2, 10)
    numbers = [await generate_invoice_number(scope, feb) for _ in range(3)]
    assert numbers == [
        "INV-DEMO-ISP-202402-0001",
        "INV-DEMO-ISP-202402-0002",
        "INV-DEMO-ISP-202402-0003",
    ]


async def test_counter_restarts_each_month(scope):
    await generate_invoice_number(scope, datetime(2024, 2, 1))
    await generate_invoice_number(scope, datetime(2024, 2, 2))

    assert await generate_invoice_number(scope, datetime(2024, 3, 1)) == "INV-DEMO-ISP-202403-0001"


async def test_each_prefix_has_its_own_counter(scope):
    await generate_invoice_number(scope, datetime(2024, 2, 1))
    custom = InvoiceSettings(prefix="CN", number_format="{PREFIX}{YEAR}{MONTH}{SEQ}")

    assert await generate_invoice_number(scope, datetime(2024, 2, 1), custom) == "CN2024020001"


async def test_tenants_do_not_share_counters(scope, db, other_tenant):
    await generate_invoice_number(scope, datetime(2024, 2, 1))
    await generate_invoice_number(scope, datetime(2024, 2, 1))

    other = await generate_invoice_number(TenantScope(db, other_tenant.id), datetime(2024, 2, 1))
    assert other == "INV-OTHER-ISP-202402-0001"


async def test_format_without_month_keeps_one_running_counter(scope):
    yearless = InvoiceSettings(prefix="INV", number_format="{PREFIX}-{SEQ}")

    feb = [await generate_invoice_number(scope, datetime(2024, 2, 1), yearless) for _ in range(2)]
    mar = await generate_invoice_number(scope, datetime(2024, 3, 1), yearless)

    assert feb == ["INV-0001", "INV-0002"]
    assert mar == "INV-0003"


async def test_format_without_prefix_shares_counter_across_prefixes(scope):
    first = await generate_invoice_number(scope, datetime(2024, 2, 1), InvoiceSettings(prefix="INV", number_format="{YEAR}-{SEQ}"))
    second = await generate_invoice_number(scope, datetime(2024, 2, 1), InvoiceSettings(prefix="CN", number_format="{YEAR}-{SEQ}"))

    assert (first, second) == ("2024-0001", "2024-0002")
