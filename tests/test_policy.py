from damkit.policy import DEFAULT_POLICY, ExclusionPolicy, is_heavy, is_light


def test_segment_patterns_match_any_depth():
    assert DEFAULT_POLICY.is_excluded("node_modules/pkg/index.js")
    assert DEFAULT_POLICY.is_excluded("app/node_modules/x.js")
    assert DEFAULT_POLICY.is_excluded(".git/HEAD")
    assert DEFAULT_POLICY.is_excluded("assets/.DS_Store")


def test_wildcard_patterns_match_file_name_only():
    assert DEFAULT_POLICY.is_excluded("clip.mp4:Zone.Identifier")
    assert not DEFAULT_POLICY.is_excluded("clip.mp4")


def test_similar_names_are_not_excluded():
    assert not DEFAULT_POLICY.is_excluded("builds/notes.md")
    assert not DEFAULT_POLICY.is_excluded("my-dist-notes/a.txt")
    assert not DEFAULT_POLICY.is_excluded("")


def test_custom_policy():
    policy = ExclusionPolicy(patterns=("*.tmp",))
    assert policy.is_excluded("a/b.tmp")
    assert not policy.is_excluded("node_modules/a.js")


def test_file_classes():
    assert is_heavy("intro.MP4")
    assert not is_heavy("intro.srt")
    assert is_light("intro.srt")
    assert not is_light("intro.mov")
