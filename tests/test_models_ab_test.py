"""
Tests for mailsplit/models/ab_test.py - enums, counter maps, defaults.
"""
import uuid

from mailsplit.models.ab_test import (
    ABTest,
    ABTestSnapshot,
    ABTestStatus,
    ABTestVariant,
    EmailType,
    ENGAGEMENT_COUNTERS,
    EngagementKind,
    RATE_COUNTERS,
)


class TestEnums:
    def test_status_values(self):
        assert [s.value for s in ABTestStatus] == ["draft", "running", "completed", "cancelled"]

    def test_email_types(self):
        assert EmailType("interview_invite") is EmailType.INTERVIEW_INVITE
        assert EmailType.CUSTOM.value == "custom"
        assert len(EmailType) == 10

    def test_every_engagement_kind_has_a_counter(self):
        assert set(ENGAGEMENT_COUNTERS) == set(EngagementKind)

    def test_rate_columns_exist(self):
        columns = set(ABTestVariant.__table__.columns.keys())
        for rate, counter in RATE_COUNTERS.items():
            assert rate in columns
            assert counter in columns


class TestPersistence:
    async def test_defaults(self, db):
        test = ABTest(owner_id=uuid.uuid4(), name="Defaults")
        db.add(test)
        await db.commit()

        assert test.status == "running"
        assert test.email_type == "custom"
        assert test.created_at is not None

    def test_snapshot_table_has_no_foreign_keys(self):
        assert not ABTestSnapshot.__table__.foreign_keys

    def test_reprs(self):
        test = ABTest(name="Subject test", status="running")
        variant = ABTestVariant(label="B", sent_count=10, conversion_rate=20)
        assert repr(test) == "<ABTest Subject test (running)>"
        assert repr(variant) == "<ABTestVariant B sent=10 conversion_rate=20%>"
