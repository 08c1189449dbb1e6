"""Testes do SessionValidator (regras de campo, negócio e registro)."""

from __future__ import annotations

import random
import threading
from datetime import timedelta
from types import SimpleNamespace

import pytest

from coach_sessions.domain.errors import InvalidTransitionError, ValidationError
from coach_sessions.domain.session.policy import SessionPolicy
from coach_sessions.domain.session.states import SessionStatus
from coach_sessions.domain.validation.rules import RequiredRule, StringLengthRule
from coach_sessions.domain.validation.validator import SessionValidator, default_rules


@pytest.fixture()
def validator(clock) -> SessionValidator:
    return SessionValidator(clock=clock)


class TestFieldRules:
    def test_valid_session_passes(self, validator, make_session) -> None:
        validator.validate(make_session())

    def test_empty_id_is_not_validated(self, validator, make_session) -> None:
        validator.validate(make_session(id=""))

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"user_id": ""}, "user_id"),
            ({"coach_id": "c" * 51}, "coach_id"),
            ({"topic": "abcd"}, "topic"),
            ({"topic": "t" * 101}, "topic"),
            ({"description": "d" * 501}, "description"),
            ({"status": SessionStatus.COMPLETED, "rating": 6}, "rating"),
            ({"status": SessionStatus.COMPLETED, "rating": 0}, "rating"),
        ],
    )
    def test_field_violations(self, validator, make_session, overrides, field) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(make_session(**overrides))

        assert exc_info.value.context["field"] == field

    def test_first_failing_field_stops_validation(self, validator, make_session) -> None:
        session = make_session(user_id="", topic="abc")

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(session)

        assert exc_info.value.context["field"] == "user_id"

    def test_default_registry_order(self) -> None:
        assert list(default_rules()) == [
            "user_id",
            "coach_id",
            "topic",
            "description",
            "status",
            "rating",
            "start_time",
            "end_time",
            "scheduled_time",
            "created_at",
            "updated_at",
        ]


class TestBusinessRules:
    def test_duration_ceiling(self, validator, make_session, clock) -> None:
        session = make_session(
            status=SessionStatus.COMPLETED,
            start_time=clock.now,
            end_time=clock.now + timedelta(minutes=20, seconds=1),
        )

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(session)

        assert exc_info.value.context["max_duration_minutes"] == 20

    def test_exact_ceiling_is_allowed(self, validator, make_session, clock) -> None:
        validator.validate(
            make_session(
                status=SessionStatus.IN_PROGRESS,
                start_time=clock.now,
                end_time=clock.now + timedelta(minutes=20),
            )
        )

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(minutes=-1)])
    def test_end_must_follow_start(self, validator, make_session, clock, offset) -> None:
        session = make_session(
            status=SessionStatus.COMPLETED,
            start_time=clock.now,
            end_time=clock.now + offset,
        )

        with pytest.raises(ValidationError, match="end time must be after start time"):
            validator.validate(session)

    def test_rating_requires_completed(self, validator, make_session) -> None:
        with pytest.raises(ValidationError, match="Only completed sessions can be rated"):
            validator.validate(make_session(status=SessionStatus.ACCEPTED, rating=4))

    def test_cancelled_cannot_carry_start(self, validator, make_session, clock) -> None:
        session = make_session(status=SessionStatus.CANCELLED, start_time=clock.now)

        with pytest.raises(ValidationError, match="Cancelled sessions"):
            validator.validate(session)

    def test_custom_policy_ceiling(self, make_session, clock) -> None:
        validator = SessionValidator(SessionPolicy(duration_minutes=30), clock=clock)

        validator.validate(
            make_session(
                status=SessionStatus.COMPLETED,
                start_time=clock.now,
                end_time=clock.now + timedelta(minutes=25),
            )
        )


@pytest.mark.parametrize("seed", range(25))
def test_generated_sessions_never_pass_with_end_before_start(
    seed, validator, make_session, clock
) -> None:
    rng = random.Random(seed)
    status = rng.choice([SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED])
    start = clock.now + timedelta(minutes=rng.randint(-600, 600))
    end = start + timedelta(seconds=rng.randint(-1800, 1800))
    session = make_session(status=status, start_time=start, end_time=end)

    try:
        validator.validate(session)
    except ValidationError:
        assert end <= start or end - start > timedelta(minutes=20)
    else:
        assert session.end_time > session.start_time
        assert session.duration_minutes() <= 20


class TestCreationRequest:
    def _request(self, **overrides):
        fields = {
            "user_id": "u1",
            "coach_id": "c1",
            "topic": "Car engine noise",
            "description": None,
            "scheduled_time": None,
        }
        fields.update(overrides)
        return SimpleNamespace(**fields)

    def test_valid_request(self, validator) -> None:
        validator.validate_creation_request(self._request())

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"user_id": ""}, "user_id"),
            ({"coach_id": None}, "coach_id"),
            ({"topic": "abc"}, "topic"),
            ({"description": "d" * 501}, "description"),
        ],
    )
    def test_invalid_requests(self, validator, overrides, field) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_creation_request(self._request(**overrides))

        assert exc_info.value.context["field"] == field

    def test_scheduled_time_must_be_future(self, validator, clock) -> None:
        validator.validate_creation_request(
            self._request(scheduled_time=clock.now + timedelta(days=1))
        )
        with pytest.raises(ValidationError):
            validator.validate_creation_request(
                self._request(scheduled_time=clock.now - timedelta(minutes=1))
            )


class TestStatusTransition:
    def test_legal_transition(self, validator) -> None:
        validator.validate_status_transition(SessionStatus.REQUESTED, SessionStatus.ACCEPTED)

    def test_illegal_transition(self, validator) -> None:
        with pytest.raises(InvalidTransitionError):
            validator.validate_status_transition(SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class TestRuleRegistry:
    def test_add_rule_appends(self, validator, make_session) -> None:
        before = validator.get_rules("topic")
        extra = StringLengthRule(10, 200)

        validator.add_rule("topic", extra)

        assert validator.get_rules("topic") == (*before, extra)
        with pytest.raises(ValidationError):
            validator.validate(make_session(topic="Short one"))

    def test_add_rule_for_new_field(self, validator, make_session) -> None:
        validator.add_rule("feedback", RequiredRule())

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(make_session())

        assert exc_info.value.context["field"] == "feedback"
        assert validator.fields()[-1] == "feedback"

    def test_clear_rules(self, validator, make_session) -> None:
        validator.clear_rules("topic")

        assert validator.get_rules("topic") == ()
        validator.validate(make_session(topic="abc"))

    def test_clear_all_rules(self, validator, make_session) -> None:
        validator.clear_rules()

        assert validator.fields() == ()
        validator.validate(make_session(user_id=""))

    def test_validation_uses_snapshot(self, validator, make_session) -> None:
        """Regras adicionadas durante uma validação não afetam a validação em curso."""
        entered = threading.Event()
        release = threading.Event()
        errors: list[Exception] = []

        class BlockingRule:
            def validate(self, value, field):
                entered.set()
                release.wait(timeout=5)

            def message(self, field=None):
                return "blocking"

        validator.add_rule("user_id", BlockingRule())

        def run() -> None:
            try:
                validator.validate(make_session(topic="Short one"))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        worker = threading.Thread(target=run)
        worker.start()
        assert entered.wait(timeout=5)
        validator.add_rule("topic", StringLengthRule(10, 200))
        release.set()
        worker.join(timeout=5)

        assert errors == []
        with pytest.raises(ValidationError):
            validator.validate(make_session(topic="Short one"))
