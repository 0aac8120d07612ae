"""
Unit tests for built-in profiles and the profile catalog.
"""

from __future__ import annotations

import pytest

from gatekeep.domain.exceptions import UnknownProfileError
from gatekeep.domain.policy import PolicyAction, PolicyRule, ProfileDefinition
from gatekeep.engine.profiles import BUILTIN_PROFILES, ProfileCatalog


class TestBuiltinProfiles:
    """Tests for the shipped profile definitions."""

    def test_names(self) -> None:
        assert list(BUILTIN_PROFILES) == ["minimal", "coding", "messaging", "full"]

    def test_dangerous_rules_have_top_priority(self) -> None:
        """Should rank group:dangerous above every other rule."""
        for profile in BUILTIN_PROFILES.values():
            dangerous = [r for r in profile.rules if r.group == "group:dangerous"]
            others = [r for r in profile.rules if r.group != "group:dangerous"]
            assert dangerous
            assert all(d.priority > o.priority for d in dangerous for o in others)


class TestProfileCatalog:
    """Tests for profile lookup and inheritance."""

    def test_get_unknown_raises(self) -> None:
        catalog = ProfileCatalog()

        with pytest.raises(UnknownProfileError) as exc_info:
            catalog.get("paranoid")

        assert "Invalid profile: paranoid" in str(exc_info.value)
        assert "minimal" in exc_info.value.available

    def test_custom_profile_replaces_builtin(self) -> None:
        custom = ProfileDefinition(name="minimal", description="custom", rules=[])
        catalog = ProfileCatalog({"minimal": custom})

        assert catalog.get("minimal").description == "custom"
        assert catalog.rules("minimal") == []

    def test_inheritance_adds_uncovered_parent_rules(self) -> None:
        """Should append parent rules the child lacks, one priority lower."""
        child = ProfileDefinition(
            name="reviewer",
            inherits="minimal",
            rules=[PolicyRule(group="group:git:write", action=PolicyAction.CONFIRM, priority=10)],
        )
        catalog = ProfileCatalog({"reviewer": child})

        rules = catalog.rules("reviewer")
        git_write = [r for r in rules if r.group == "group:git:write"]
        fs_read = [r for r in rules if r.group == "group:fs:read"]

        assert len(git_write) == 1
        assert git_write[0].action == PolicyAction.CONFIRM
        assert fs_read[0].priority == 9

    def test_comparison_matrix(self) -> None:
        matrix = ProfileCatalog().comparison()

        assert matrix["group:runtime:shell"]["minimal"] == PolicyAction.DENY
        assert matrix["group:runtime:shell"]["coding"] == PolicyAction.ALLOW
        assert matrix["group:runtime:shell"]["messaging"] == PolicyAction.CONFIRM
        assert matrix["group:fs:read"]["full"] == PolicyAction.ALLOW
        assert matrix["group:dangerous"]["full"] == PolicyAction.CONFIRM

    def test_comparison_defaults_to_confirm(self) -> None:
        matrix = ProfileCatalog().comparison(("group:unmapped",))
        assert set(matrix["group:unmapped"].values()) == {PolicyAction.CONFIRM}
