"""Tests for kanban.projection.fetchers — lookups that match names the way boards do."""
from kanban.projection.fetchers import fetch_lead_ids_with_tags


class TestFetchLeadIdsWithTags:

    def test_diacritics_and_case_ignored(self, board):
        plain = board.lead()
        accented = board.lead()
        shouting = board.lead()
        other = board.lead()
        board.tag(plain, 'Saloane')
        board.tag(accented, 'Reparații')
        board.tag(shouting, 'FRIZÉRII')
        board.tag(other, 'VIP')

        result = fetch_lead_ids_with_tags(['Saloane', 'Frizerii', 'Reparatii'])

        assert result.ok
        assert sorted(result.data) == sorted([plain, accented, shouting])

    def test_lead_with_two_matching_tags_listed_once(self, board):
        lead = board.lead()
        board.tag(lead, 'Saloane')
        board.tag(lead, 'saloane')
        assert fetch_lead_ids_with_tags(['Saloane']).data == [lead]

    def test_no_names_no_query(self):
        assert fetch_lead_ids_with_tags(['', None]).data == []
