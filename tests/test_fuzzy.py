from damkit.fuzzy import find_matches, levenshtein


def test_levenshtein_basics():
    assert levenshtein("", "abc") == 3
    assert levenshtein("abc", "") == 3
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("same", "same") == 0


def test_find_matches_sorted_by_distance_and_thresholded():
    candidates = ["appydave", "voz", "aitldr", "joy"]
    assert find_matches("appydav", candidates) == ["appydave"]
    assert find_matches("vo", candidates)[0] == "voz"
    assert find_matches("zzzzzzzz", candidates) == []


def test_find_matches_is_case_insensitive():
    assert find_matches("APPYDAVE", ["appydave"]) == ["appydave"]


def test_find_matches_empty_input():
    assert find_matches("", ["a"]) == []
