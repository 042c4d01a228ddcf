"""Tests for work item notification fan-out."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from notifier.core.locks import work_item_lock
from notifier.db.enums import ChangeKind, JobType
from notifier.db.models import (
    Group,
    Job,
    NamedQuery,
    QuerySetting,
    UserEmailAddress,
    WorkItem,
    WorkItemChange,
    WorkItemComment,
)
from notifier.events import EventKind, WorkItemChanged, WorkItemCommented, WorkItemOpened
from notifier.services import watch_service, work_item_notification_service
from notifier.services.visit_service import DbVisitTracker, as_utc
from notifier.services.work_item_notification_service import (
    WATCHER_POLICY,
    FanoutState,
    NotificationPreconditionError,
    on_event,
    should_notify_watchers,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _comment(db, work_item, author, content):
    comment = WorkItemComment(work_item=work_item, user_id=author.id if author else None, content=content)
    db.add(comment)
    db.flush()
    return comment


def _change(db, work_item, kind: ChangeKind, *, new_value=None, comment=None):
    change = WorkItemChange(
        work_item=work_item,
        kind=kind.value,
        old_value=None,
        new_value=new_value,
        comment=comment,
    )
    db.add(change)
    db.flush()
    return change


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


# =============================================================================
# Actor handling
# =============================================================================


def test_actor_is_force_watched_but_never_notified(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)

    assert watch_service.is_watching(work_item, alice.id)
    assert alice not in result.mentioned
    assert alice not in result.carbon
    assert result.carbon == (bob,)
    assert len(dispatcher.sent) == 1
    sent = dispatcher.sent[0]
    assert sent.to == []
    assert sent.cc == ["bob@example.com"]
    assert sent.subject == "[Open] Alice opened work item #1: Login page crashes"


def test_system_actor_is_not_force_watched(db, work_item, make_user, bob, collaborators, dispatcher):
    system = make_user("system", is_system=True, email=None)
    watch_service.set_watch(db, work_item, bob, True)

    result = on_event(db, WorkItemOpened(actor=system, occurred_at=_now()), work_item, collaborators=collaborators)

    assert watch_service.get_watch(work_item, system.id) is None
    assert system.id in result.notified_user_ids
    assert result.carbon == (bob,)


def test_event_without_actor_uses_activity_as_subject(db, work_item, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    change = _change(db, work_item, ChangeKind.STATE, new_value="Closed")
    work_item.state = "Closed"

    on_event(db, WorkItemChanged(actor=None, occurred_at=_now(), change=change), work_item, collaborators=collaborators)

    assert dispatcher.sent[0].subject == "[Closed] changed state of work item #1: Login page crashes"


# =============================================================================
# Mentions
# =============================================================================


def test_mentioned_user_is_addressed_and_watchers_are_carbon(db, work_item, alice, bob, carol, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, carol, True)
    comment = _comment(db, work_item, alice, "hey @bob, can you check?")

    result = on_event(
        db,
        WorkItemCommented(actor=alice, occurred_at=_now(), comment=comment),
        work_item,
        collaborators=collaborators,
    )

    assert result.mentioned == (bob,)
    assert result.carbon == (carol,)
    assert watch_service.is_watching(work_item, bob.id)
    sent = dispatcher.sent[0]
    assert sent.to == ["bob@example.com"]
    assert sent.cc == ["carol@example.com"]
    assert sent.subject == "[Open] Alice commented on work item #1: Login page crashes"
    assert "#comment-" in sent.text_body


def test_mentioned_watcher_is_not_also_carbon(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    comment = _comment(db, work_item, alice, "@bob @bob")

    result = on_event(
        db,
        WorkItemCommented(actor=alice, occurred_at=_now(), comment=comment),
        work_item,
        collaborators=collaborators,
    )

    assert result.mentioned == (bob,)
    assert result.carbon == ()
    assert set(result.mentioned).isdisjoint(result.carbon)
    assert dispatcher.sent[0].to == ["bob@example.com"]
    assert dispatcher.sent[0].cc == []


def test_self_mention_is_ignored(db, work_item, alice, collaborators, dispatcher):
    comment = _comment(db, work_item, alice, "note to @alice")

    result = on_event(
        db,
        WorkItemCommented(actor=alice, occurred_at=_now(), comment=comment),
        work_item,
        collaborators=collaborators,
    )

    assert result.mentioned == ()
    assert dispatcher.sent == []


def test_unknown_mention_is_ignored(db, work_item, alice, bob, collaborators, dispatcher):
    comment = _comment(db, work_item, alice, "ping @ghost123 and @bob")

    result = on_event(
        db,
        WorkItemCommented(actor=alice, occurred_at=_now(), comment=comment),
        work_item,
        collaborators=collaborators,
    )

    assert result.mentioned == (bob,)
    assert len(dispatcher.sent) == 1


# =============================================================================
# Watcher policy
# =============================================================================


def test_watcher_policy_covers_every_event_kind():
    assert set(WATCHER_POLICY) == set(EventKind)


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (ChangeKind.STATE, True),
        (ChangeKind.TITLE, True),
        (ChangeKind.FIELDS, True),
        (ChangeKind.MILESTONE, True),
        (ChangeKind.DESCRIPTION, False),
        (ChangeKind.REFERENCED_FROM_CODE_COMMENT, False),
        (ChangeKind.REFERENCED_FROM_WORK_ITEM, False),
        (ChangeKind.REFERENCED_FROM_PULL_REQUEST, False),
    ],
)
def test_should_notify_watchers_for_changes(kind, expected):
    event = WorkItemChanged(actor=None, occurred_at=_now(), change=WorkItemChange(kind=kind.value))
    assert should_notify_watchers(event) is expected


def test_change_policy_rejects_other_event_kinds():
    with pytest.raises(NotificationPreconditionError):
        WATCHER_POLICY[EventKind.CHANGED](WorkItemOpened(actor=None, occurred_at=_now()))


def test_description_edit_without_mentions_sends_nothing(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    change = _change(db, work_item, ChangeKind.DESCRIPTION, new_value="Reworded steps")

    result = on_event(
        db,
        WorkItemChanged(actor=alice, occurred_at=_now(), change=change),
        work_item,
        collaborators=collaborators,
    )

    assert result.dispatch_count == 0
    assert dispatcher.sent == []


def test_description_edit_with_mention_also_reaches_watchers(db, work_item, alice, bob, carol, collaborators, dispatcher):
    # once someone is mentioned the message goes out, and watchers ride along in Cc
    watch_service.set_watch(db, work_item, carol, True)
    change = _change(db, work_item, ChangeKind.DESCRIPTION, new_value="cc @bob")

    result = on_event(
        db,
        WorkItemChanged(actor=alice, occurred_at=_now(), change=change),
        work_item,
        collaborators=collaborators,
    )

    assert result.mentioned == (bob,)
    assert result.carbon == (carol,)
    assert result.dispatch_count == 1
    assert dispatcher.sent[0].to == ["bob@example.com"]
    assert dispatcher.sent[0].cc == ["carol@example.com"]
    assert dispatcher.sent[0].subject == "[Open] Alice changed description of work item #1: Login page crashes"


def test_cross_reference_does_not_reach_watchers(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    change = _change(db, work_item, ChangeKind.REFERENCED_FROM_PULL_REQUEST)

    result = on_event(
        db,
        WorkItemChanged(actor=alice, occurred_at=_now(), change=change),
        work_item,
        collaborators=collaborators,
    )

    assert result.dispatch_count == 0


def test_unwatched_users_are_not_carbon(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, False)

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)

    assert result.carbon == ()
    assert dispatcher.sent == []


# =============================================================================
# Suppression
# =============================================================================


def test_already_reached_address_is_excluded_from_carbon(db, work_item, alice, bob, carol, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    watch_service.set_watch(db, work_item, carol, True)
    db.add(UserEmailAddress(user=carol, email="carol.alt@example.com"))
    db.flush()
    comment = _comment(db, work_item, alice, "replying by mail")

    result = on_event(
        db,
        WorkItemCommented(
            actor=alice,
            occurred_at=_now(),
            comment=comment,
            reached_addresses=frozenset({"BOB@example.com", "Carol.Alt@example.com"}),
        ),
        work_item,
        collaborators=collaborators,
    )

    assert result.carbon == ()
    assert dispatcher.sent == []


def test_already_reached_address_can_still_be_mentioned(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    comment = _comment(db, work_item, alice, "@bob see above")

    result = on_event(
        db,
        WorkItemCommented(
            actor=alice,
            occurred_at=_now(),
            comment=comment,
            reached_addresses=frozenset({"bob@example.com"}),
        ),
        work_item,
        collaborators=collaborators,
    )

    assert result.mentioned == (bob,)
    assert dispatcher.sent[0].to == ["bob@example.com"]


def test_watcher_who_visited_after_event_is_skipped(db, work_item, alice, bob, carol, collaborators, dispatcher):
    occurred_at = _now()
    watch_service.set_watch(db, work_item, bob, True)
    watch_service.set_watch(db, work_item, carol, True)
    visits = DbVisitTracker(db)
    visits.record_visit(bob, work_item, occurred_at + timedelta(minutes=1))
    visits.record_visit(carol, work_item, occurred_at - timedelta(minutes=1))

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=occurred_at), work_item, collaborators=collaborators)

    assert result.carbon == (carol,)


def test_naive_event_time_is_compared_as_utc(db, work_item, alice, bob, collaborators, dispatcher):
    occurred_at = _now()
    watch_service.set_watch(db, work_item, bob, True)
    DbVisitTracker(db).record_visit(bob, work_item, occurred_at + timedelta(minutes=1))

    result = on_event(
        db,
        WorkItemOpened(actor=alice, occurred_at=occurred_at.replace(tzinfo=None)),
        work_item,
        collaborators=collaborators,
    )

    assert result.carbon == ()
    assert dispatcher.sent == []


def test_as_utc_normalizes_naive_and_aware_values():
    naive = datetime(2024, 5, 1, 12, 0)
    aware = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert as_utc(naive) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(aware).utcoffset() == timedelta(0)
    assert as_utc(aware) == as_utc(naive)


# =============================================================================
# Role assignment
# =============================================================================


def test_role_assignment_notifies_assignee_once(db, make_user, make_work_item, alice, collaborators, dispatcher):
    dave = make_user("dave")
    work_item = make_work_item()

    result = on_event(
        db,
        WorkItemOpened(
            actor=alice,
            occurred_at=_now(),
            description="@dave please take a look",
            new_users={"Assignee": [dave]},
        ),
        work_item,
        collaborators=collaborators,
    )

    assert result.dispatch_count == 1
    assert result.mentioned == ()
    assert watch_service.is_watching(work_item, dave.id)
    sent = dispatcher.sent[0]
    assert sent.to == ["dave@example.com"]
    assert sent.subject == '[Open] You are now "Assignee" of work item #1: Login page crashes'
    assert "To stop watching" not in sent.text_body


def test_role_assignment_of_actor_only_sends_nothing(db, work_item, alice, collaborators, dispatcher):
    result = on_event(
        db,
        WorkItemOpened(actor=alice, occurred_at=_now(), new_users={"Assignee": [alice]}),
        work_item,
        collaborators=collaborators,
    )

    assert result.dispatch_count == 0
    assert watch_service.is_watching(work_item, alice.id)


def test_group_role_assignment_excludes_actor(db, work_item, alice, bob, carol, collaborators, dispatcher):
    group = Group(name="devs", members=[alice, bob, carol])
    db.add(group)
    db.flush()

    result = on_event(
        db,
        WorkItemOpened(actor=alice, occurred_at=_now(), new_groups={"Reviewers": group}),
        work_item,
        collaborators=collaborators,
    )

    assert dispatcher.sent[0].to == ["bob@example.com", "carol@example.com"]
    assert {alice.id, bob.id, carol.id} <= result.notified_user_ids
    assert watch_service.is_watching(work_item, bob.id)
    assert watch_service.is_watching(work_item, carol.id)
    # role members are not cc'd again by the consolidated message
    assert result.carbon == ()
    assert result.dispatch_count == 1


# =============================================================================
# Saved-query watches
# =============================================================================


def test_global_query_watch_overrides_project_query_watch(db, project, work_item, alice, bob, collaborators, dispatcher):
    db.add_all(
        [
            NamedQuery(project=project, name="open", query='"State" is "Open"', position=0),
            NamedQuery(project=None, name="all-open", query='"State" is "Open"', position=0),
            QuerySetting(user=bob, project=project, user_queries=[], user_query_watches={}, query_watches={"open": True}),
            QuerySetting(user=bob, project=None, user_queries=[], user_query_watches={}, query_watches={"all-open": False}),
        ]
    )
    db.flush()

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)

    watch = watch_service.get_watch(work_item, bob.id)
    assert watch is not None
    assert watch.watching is False
    assert bob not in result.carbon


def test_query_watch_makes_user_a_carbon_recipient(db, project, work_item, alice, bob, collaborators, dispatcher):
    db.add_all(
        [
            NamedQuery(project=project, name="crashes", query='"Title" contains "crash"', position=0),
            QuerySetting(user=bob, project=project, user_queries=[], user_query_watches={}, query_watches={"crashes": True}),
        ]
    )
    db.flush()

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)

    assert result.carbon == (bob,)


def test_deeply_nested_saved_query_does_not_abort_event(db, project, work_item, alice, bob, carol, collaborators, dispatcher):
    nested = "(" * 5000 + '"State" is "Open"' + ")" * 5000
    db.add_all(
        [
            QuerySetting(user=carol, project=project, user_queries=[{"name": "deep", "query": nested}], user_query_watches={"deep": True}, query_watches={}),
            QuerySetting(user=bob, project=project, user_queries=[{"name": "open", "query": '"State" is "Open"'}], user_query_watches={"open": True}, query_watches={}),
        ]
    )
    db.flush()

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)

    assert watch_service.is_watching(work_item, bob.id)
    assert watch_service.get_watch(work_item, carol.id) is None
    assert result.carbon == (bob,)


# =============================================================================
# Message details and dispatch
# =============================================================================


def test_reply_address_and_thread_key_are_shared(db, work_item, alice, bob, make_user, collaborators, dispatcher):
    dave = make_user("dave")
    watch_service.set_watch(db, work_item, bob, True)

    on_event(
        db,
        WorkItemOpened(actor=alice, occurred_at=_now(), new_users={"Assignee": [dave]}),
        work_item,
        collaborators=collaborators,
    )

    assert len(dispatcher.sent) == 2
    for sent in dispatcher.sent:
        assert sent.reply_address == "issues+FOO-1@example.com"
        assert sent.thread_key == f"{work_item.item_uuid}@notifier.test"
    assert "issues+FOO-1-unsubscribe@example.com" in dispatcher.sent[1].text_body
    assert "https://tracker.example.com/projects/FOO/work-items/1" in dispatcher.sent[1].text_body


def test_default_gateway_queues_outbox_job(db, work_item, alice, bob):
    watch_service.set_watch(db, work_item, bob, True)

    result = on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item)

    jobs = db.scalars(select(Job).where(Job.job_type == JobType.NOTIFICATION_EMAIL.value)).all()
    assert result.dispatch_count == 1
    assert len(jobs) == 1
    assert jobs[0].payload["cc"] == ["bob@example.com"]
    assert jobs[0].payload["to"] == []


# =============================================================================
# Preconditions and state
# =============================================================================


def test_comment_without_actor_is_rejected(db, work_item, alice, collaborators, dispatcher):
    comment = _comment(db, work_item, alice, "orphan")

    with pytest.raises(NotificationPreconditionError):
        on_event(db, WorkItemCommented(actor=None, occurred_at=_now(), comment=comment), work_item, collaborators=collaborators)

    assert watch_service.list_watches(work_item) == []
    assert dispatcher.sent == []


def test_work_item_without_project_is_rejected(db, alice, collaborators):
    work_item = WorkItem(number=7, title="Loose", state="Open")
    db.add(work_item)
    db.flush()

    with pytest.raises(work_item_notification_service.NotificationServiceError):
        on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)


def test_fanout_state_is_immutable(alice, bob):
    state = FanoutState()
    notified = state.with_notified(alice)
    mentioned = notified.with_mentioned(bob)

    assert state.notified_user_ids == frozenset()
    assert notified.notified_user_ids == {alice.id}
    assert mentioned.mentioned == (bob,)
    assert notified.mentioned == ()


def test_caller_can_hold_work_item_lock_across_commit(db, work_item, alice, bob, collaborators, dispatcher):
    watch_service.set_watch(db, work_item, bob, True)
    order: list[str] = []
    waiting = threading.Event()

    def _next_event():
        waiting.set()
        with work_item_lock(work_item.id):
            order.append("next event")

    with work_item_lock(work_item.id):
        on_event(db, WorkItemOpened(actor=alice, occurred_at=_now()), work_item, collaborators=collaborators)
        thread = threading.Thread(target=_next_event, daemon=True)
        thread.start()
        assert waiting.wait(timeout=5)
        db.commit()
        order.append("committed")

    thread.join(timeout=5)
    assert order == ["committed", "next event"]
    assert watch_service.is_watching(work_item, alice.id)
    assert len(dispatcher.sent) == 1
