"""
projectcam/test_derived.py

Computed response fields: completion percentage, file sizes, file types,
addresses.

Run:
    pytest projectcam/test_derived.py -v
"""

import pytest

from projectcam.derived import completion_percentage, file_type, format_file_size, full_address


def _items(*flags):
    return {"items": [{"text": f"item {i}", "completed": f} for i, f in enumerate(flags)]}


class TestCompletionPercentage:
    def test_zero_without_checklists(self):
        assert completion_percentage([]) == 0
        assert completion_percentage(None) == 0

    def test_zero_when_every_checklist_is_empty(self):
        assert completion_percentage([{"items": []}, {"items": []}]) == 0

    def test_hundred_when_all_complete(self):
        assert completion_percentage([_items(True, True), _items(True)]) == 100

    def test_one_of_three_rounds_down(self):
        assert completion_percentage([_items(True, False, False)]) == 33

    def test_two_of_three_rounds_up(self):
        assert completion_percentage([_items(True, True, False)]) == 67

    def test_half_rounds_up(self):
        """1/8 = 12.5% must round to 13, not banker's-round to 12."""
        assert completion_percentage([_items(True, *([False] * 7))]) == 13

    def test_counts_across_checklists(self):
        assert completion_percentage([_items(True), _items(False, False, False)]) == 25


class TestFormatFileSize:
    @pytest.mark.parametrize(
        "num_bytes, expected",
        [
            (0, "0 Bytes"),
            (1, "1 Bytes"),
            (1023, "1023 Bytes"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (1048576, "1 MB"),
            (5 * 1024 * 1024 + 1024 * 300, "5.29 MB"),
            (1024 ** 3, "1 GB"),
            (1024 ** 4, "1024 GB"),
        ],
    )
    def test_formats(self, num_bytes, expected):
        assert format_file_size(num_bytes) == expected

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            format_file_size(-1)


class TestFileType:
    def test_categories(self):
        assert file_type("image/png") == "image"
        assert file_type("video/quicktime") == "video"
        assert file_type("application/pdf") == "document"
        assert file_type(None) == "document"


class TestFullAddress:
    def test_formats_street_city_state_zip(self):
        address = {"street": "12 Oak St", "city": "Springfield", "state": "IL", "zip_code": "62701"}
        assert full_address(address) == "12 Oak St, Springfield, IL 62701"

    def test_empty_address(self):
        assert full_address(None) == ""
