from datetime import date, datetime

import pytest

from imap_mail_reader.exceptions import ConfigurationError
from imap_mail_reader.models import SearchField, SearchQuery
from imap_mail_reader.search import (
    build_search_command,
    coerce_day,
    date_query,
    format_imap_date,
    order_and_page,
)


def test_term_search_quotes_term_and_appends_unseen():
    command = build_search_command(SearchQuery(term="invoice", field=SearchField.SUBJECT, unread_only=True))

    assert command.criteria == ("SUBJECT", '"invoice"', "UNSEEN")
    assert command.charset is None
    assert command.literal is None


def test_term_search_escapes_quotes():
    command = build_search_command(SearchQuery(term='say "hi"'))

    assert command.criteria == ("TEXT", '"say \\"hi\\""')


@pytest.mark.parametrize("term", ["line\r\nALL", "two\nlines"])
def test_term_with_line_break_is_rejected(term):
    with pytest.raises(ConfigurationError, match="line breaks"):
        build_search_command(SearchQuery(term=term))


def test_date_window_search():
    command = build_search_command(SearchQuery(since=date(2024, 1, 1), before=date(2024, 2, 1), unread_only=True))

    assert command.criteria == ("SINCE", "01-Jan-2024", "BEFORE", "01-Feb-2024", "UNSEEN")


def test_empty_query_matches_all():
    assert build_search_command(SearchQuery()).criteria == ("ALL",)


def test_non_ascii_term_is_sent_as_utf8_literal():
    command = build_search_command(SearchQuery(term="Réunion", field=SearchField.FROM, unread_only=True))

    assert command.charset == "UTF-8"
    assert command.criteria == ("UNSEEN", "FROM")
    assert command.literal == "Réunion".encode("utf-8")
    assert command.describe().endswith("{8}")


def test_format_imap_date_discards_time():
    assert format_imap_date(datetime(2023, 12, 5, 23, 59)) == "05-Dec-2023"


def test_order_and_page_sorts_newest_first():
    assert order_and_page([3, 10, 7, 1]) == [10, 7, 3, 1]
    assert order_and_page([3, 10, 7, 1], limit=2) == [10, 7]
    assert order_and_page([3, 10, 7, 1], limit=2, offset=1) == [7, 3]
    assert order_and_page([3, 10, 7, 1], limit=0) == []
    assert order_and_page([], limit=5) == []


def test_coerce_day_accepts_dates_and_strings():
    assert coerce_day(datetime(2024, 3, 9, 12, 0)) == date(2024, 3, 9)
    assert coerce_day(date(2024, 3, 9)) == date(2024, 3, 9)
    assert coerce_day("2024-03-09") == date(2024, 3, 9)
    assert coerce_day(None) is None


def test_coerce_day_rejects_gibberish():
    with pytest.raises(ConfigurationError):
        coerce_day("zzqx wvqj")


def test_date_query_builds_structured_query():
    query = date_query("2024-01-01", date(2024, 1, 31), unread_only=True)

    assert query == SearchQuery(since=date(2024, 1, 1), before=date(2024, 1, 31), unread_only=True)
