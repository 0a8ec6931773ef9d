import unittest

from sqlmodel import select

from app.city.achievements import AchievementStats, check_achievements, qualifies
from app.models import Achievement, ActivityFeed, DeveloperAchievement, Purchase


class TestQualifies(unittest.TestCase):
    def test_threshold_is_inclusive(self):
        achievement = Achievement(
            id="builder", category="repos", name="Builder", description="", threshold=5, tier="bronze"
        )
        self.assertTrue(qualifies(achievement, AchievementStats(public_repos=5)))
        self.assertFalse(qualifies(achievement, AchievementStats(public_repos=4)))

    def test_unknown_category_never_qualifies(self):
        achievement = Achievement(
            id="odd", category="streak", name="Odd", description="", threshold=0, tier="bronze"
        )
        self.assertFalse(qualifies(achievement, AchievementStats()))


def test_unlocks_and_grants_reward(session, make_developer):
    developer = make_developer("pusher", contributions=150)

    unlocked = check_achievements(session, developer)

    assert [a.id for a in unlocked] == ["first_push", "committed"]
    rewards = session.exec(
        select(Purchase.item_id).where(
            Purchase.developer_id == developer.id, Purchase.provider == "achievement"
        )
    ).all()
    assert sorted(rewards) == ["custom_color", "flag"]
    event = session.exec(
        select(ActivityFeed).where(ActivityFeed.event_type == "achievement_unlocked")
    ).one()
    assert event.event_metadata["count"] == 2


def test_single_unlock_names_the_achievement(session, make_developer):
    developer = make_developer("starry", total_stars=10)

    check_achievements(session, developer)

    event = session.exec(
        select(ActivityFeed).where(ActivityFeed.event_type == "achievement_unlocked")
    ).one()
    assert event.event_metadata["achievement_id"] == "rising_star"
    assert event.event_metadata["tier"] == "bronze"


def test_second_check_is_a_no_op(session, make_developer):
    developer = make_developer("pusher", contributions=1)

    assert len(check_achievements(session, developer)) == 1
    assert check_achievements(session, developer) == []
    rows = session.exec(
        select(DeveloperAchievement).where(DeveloperAchievement.developer_id == developer.id)
    ).all()
    assert len(rows) == 1


def test_owned_reward_is_not_granted_twice(session, make_developer, grant):
    developer = make_developer("owner", contributions=1)
    grant(developer, "flag")

    check_achievements(session, developer)

    flags = session.exec(
        select(Purchase).where(Purchase.developer_id == developer.id, Purchase.item_id == "flag")
    ).all()
    assert len(flags) == 1


def test_gifted_reward_is_not_granted_again(session, make_developer, grant):
    giver = make_developer("giver")
    developer = make_developer("owner", contributions=1)
    grant(giver, "flag", gifted_to=developer.id)

    check_achievements(session, developer)

    rewards = session.exec(select(Purchase).where(Purchase.provider == "achievement")).all()
    assert rewards == []
    unlocked = session.exec(
        select(DeveloperAchievement).where(DeveloperAchievement.developer_id == developer.id)
    ).all()
    assert "first_push" in [row.achievement_id for row in unlocked]
