from similarity import edit_distance, phonetic_code, phonetic_match, similarity


def test_edit_distance_basic():
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("", "abc") == 3
    assert edit_distance("Leeds", "leeds") == 0


def test_similarity_identity_and_empty():
    assert similarity("Leeds", "Leeds") == 1.0
    assert similarity("", "") == 1.0
    assert similarity("abc", "") == 0.0


def test_similarity_is_symmetric():
    pairs = [("Leds", "Leeds"), ("Bristol", "Brist"), ("Oak Lane", "Park Row"), ("a", "")]
    for a, b in pairs:
        assert similarity(a, b) == similarity(b, a)


def test_similarity_typo_above_threshold():
    assert similarity("leds", "leeds") == 0.8
    assert similarity("zzzqq", "leeds") < 0.6
    assert similarity("zzzqq", "bristol") < 0.6


def test_phonetic_examples():
    assert phonetic_code("Robert") == "R163"
    assert phonetic_code("Smith") == "S530"
    assert phonetic_match("Smith", "Smyth")
    assert not phonetic_match("Smith", "Jones")


def test_phonetic_code_is_stable_and_padded():
    assert phonetic_code("Lee") == "L000"
    assert phonetic_code("Ashcroft") == phonetic_code("Ashcroft")
    assert phonetic_code("") == ""
    assert not phonetic_match("", "")
