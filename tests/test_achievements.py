from achievements import REQUIREMENT_CHECKS, RequirementType, find_unlockable, requirement_met, seed_achievements
from extensions import db
from models_achievements import Achievement, UserAchievement
from points import award_light


def test_every_requirement_type_has_a_check():
    assert set(REQUIREMENT_CHECKS) == set(RequirementType)


def test_seeding_is_idempotent(app):
    assert seed_achievements() == 0


def test_nothing_unlocked_yet_excludes_nothing(app):
    found = find_unlockable("u-fresh", "daily_defiance", {"streak": 3})
    assert [a.id for a in found] == ["first_defiance", "streak_3"]


def test_unknown_requirement_type_never_unlocks(app):
    db.session.add(
        Achievement(
            id="mystery",
            name="Mystery",
            category="misc",
            requirement_type="moon_phase",
            requirement_value=0,
            points_reward=999,
        )
    )
    db.session.commit()

    achievement = db.session.get(Achievement, "mystery")
    assert requirement_met(achievement, "daily_defiance", {"streak": 100}) is False
    assert "mystery" not in [a.id for a in find_unlockable("u-x", "daily_defiance", {"streak": 100})]


def test_achievement_unlocks_once(app):
    first = award_light("u-tip", "forbidden_knowledge", 150, source_type="relief_strategy")
    assert [a["id"] for a in first.unlocked_achievements] == ["first_knowledge"]
    assert first.new_total == 225

    second = award_light("u-tip", "forbidden_knowledge", 150, source_type="relief_strategy")
    assert second.unlocked_achievements == []
    assert second.new_total == 375
    assert UserAchievement.query.filter_by(user_id="u-tip").count() == 1


def test_reward_awards_do_not_trigger_more_unlocks(app):
    assert find_unlockable("u-any", "achievement_unlock", {"streak": 30}) == []


def test_profile_completion_needs_full_profile(app):
    assert [a.id for a in find_unlockable("u-prof", "forge_armor", {"completion_percentage": 80})] == []
    assert [a.id for a in find_unlockable("u-prof", "forge_armor", {"completion_percentage": 100})] == ["armor_forged"]
