import pytest

from bot import FortuneDrawBot, parse_admin_ids, parse_int_args


@pytest.fixture
def bot(mongo_db, monkeypatch):
    monkeypatch.setenv("ADMIN_IDS", "42, 7,abc")
    return FortuneDrawBot(db=mongo_db)


def test_parse_admin_ids():
    assert parse_admin_ids("1, 2,x,") == {1, 2}
    assert parse_admin_ids(None) == set()


def test_parse_int_args():
    assert parse_int_args(["3", "5", "extra"], 2) == [3, 5]
    assert parse_int_args(["3"], 2) is None
    assert parse_int_args(["three"], 1) is None


def test_admins_from_environment(bot):
    assert bot.is_admin(42)
    assert bot.is_admin(7)
    assert not bot.is_admin(1)


def test_chance_text_for_empty_pool(bot, open_event):
    text = bot.chance_text(1, open_event)

    assert "Winning chance: 0.0000%" in text
    assert "Buy at least one ticket" in text


def test_chance_text_for_participant(bot, open_event, buy):
    buy(1, open_event, 1)
    buy(2, open_event, 3)

    text = bot.chance_text(1, open_event)

    assert "Winning chance: 25.0000%" in text
    assert "Buy at least one ticket" not in text


def test_events_text_lists_active_events(bot, open_event):
    text, buttons = bot.events_text()

    assert f"#{open_event} Weekly Draw" in text
    assert buttons[0][0].callback_data == f"chance_{open_event}"


def test_ticket_image_without_template(bot):
    image = bot._generate_ticket_image("LT1-ABC-123456")

    assert image.size == (800, 450)
    with bot._pil_image_to_bytes(image) as bio:
        assert bio.read(2) == b"\xff\xd8"
