from papergen.services.exercise_service import detect_exercises, merge_exercises


def test_detects_all_label_kinds_in_pattern_order():
    text = "See Example 3 and Exercise 2.1. Problem 4 is harder than Question 7."
    assert detect_exercises(text) == ["Exercise 2.1", "Example 3", "Problem 4", "Question 7"]


def test_each_pattern_capped_at_five():
    text = " ".join(f"Exercise {i}" for i in range(1, 10)) + " Example 1"
    found = detect_exercises(text)
    assert found == ["Exercise 1", "Exercise 2", "Exercise 3", "Exercise 4", "Exercise 5", "Example 1"]


def test_dedupe_is_case_sensitive():
    text = "Exercise 1 ... Exercise 1 ... EXERCISE 1"
    assert detect_exercises(text) == ["Exercise 1", "EXERCISE 1"]


def test_trailing_sentence_period_not_captured():
    assert detect_exercises("Solve Exercise 4.") == ["Exercise 4"]


def test_empty_text():
    assert detect_exercises("") == []
    assert detect_exercises("No labelled material here") == []


def test_merge_keeps_first_seen_order():
    assert merge_exercises(["Exercise 1", "Example 2"], ["Example 2", "Problem 1"]) == [
        "Exercise 1", "Example 2", "Problem 1",
    ]
