"""Ticket identifier tests"""

import pytest

from tickets.domain import TicketIdentifier


class TestTicketIdentifier:

    def test_format_pads_to_three_digits(self):
        assert str(TicketIdentifier(2024, 1)) == "TK-2024-001"
        assert str(TicketIdentifier(2024, 42)) == "TK-2024-042"

    def test_sequence_grows_past_three_digits(self):
        assert str(TicketIdentifier(2024, 1000)) == "TK-2024-1000"

    def test_parse(self):
        identifier = TicketIdentifier.parse("TK-2025-017")
        assert identifier == TicketIdentifier(2025, 17)

    @pytest.mark.parametrize("value", ["TK-2024-01", "tk-2024-001", "TK-24-001", "TK-2024-001x", ""])
    def test_invalid_strings(self, value):
        assert not TicketIdentifier.is_valid(value)
        with pytest.raises(ValueError):
            TicketIdentifier.parse(value)

    def test_sequence_must_be_positive(self):
        with pytest.raises(ValueError):
            TicketIdentifier(2024, 0)
