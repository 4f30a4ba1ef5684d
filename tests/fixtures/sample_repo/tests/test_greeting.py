from sample.greeting import _legacy_greet, greet


def test_greet():
    assert greet("bob") == "hi bob"


def test_legacy():
    assert _legacy_greet() == "hello"
