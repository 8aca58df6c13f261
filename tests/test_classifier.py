from signal_engine.classifier import StateClassifier, title_rule
from signal_engine.models import ActivityState, AppClassification

GREEN = ActivityState.GREEN
AMBER = ActivityState.AMBER
RED = ActivityState.RED


def test_default_rules_cover_tools_and_sites():
    classifier = StateClassifier()
    assert classifier.classify("Code", "main.py - project") is GREEN
    assert classifier.classify("Figma", "Landing page") is GREEN
    assert classifier.classify("Obsidian", "Daily note") is GREEN
    assert classifier.classify("chrome", "Funny cats - YouTube") is RED
    assert classifier.classify("chrome", "Fix flaky test by someone - GitHub") is GREEN
    assert classifier.classify("firefox", "python - How to sort a dict - Stack Overflow") is GREEN
    assert classifier.classify("firefox", "reddit: the front page of the internet") is RED


def test_youtube_music_is_not_red():
    classifier = StateClassifier()
    assert classifier.classify("chrome", "Lo-fi beats - YouTube Music") is AMBER


def test_unknown_input_is_amber():
    classifier = StateClassifier()
    assert classifier.classify("Slack", "general") is AMBER
    assert classifier.classify("", "") is AMBER
    assert classifier.classify(None, None) is AMBER


def test_override_wins_and_ignores_case():
    classifier = StateClassifier(overrides={"Slack": RED, "Code": AMBER})
    assert classifier.classify("slack", "general") is RED
    assert classifier.classify("CODE", "main.py") is AMBER


def test_override_keywords_adjust_title():
    classifier = StateClassifier(
        overrides=[AppClassification(app_name="chrome", state=AMBER, keywords=["+docs", "!reddit"])]
    )
    assert classifier.classify("Chrome", "Python docs") is GREEN
    assert classifier.classify("Chrome", "Reddit - popular") is RED
    assert classifier.classify("Chrome", "Weather") is AMBER


def test_rules_apply_in_order():
    classifier = StateClassifier(
        rules=[title_rule(r"standup", GREEN), title_rule(r"meeting", RED)],
    )
    assert classifier.classify("zoom", "Standup meeting") is GREEN
    assert classifier.classify("zoom", "Planning meeting") is RED
