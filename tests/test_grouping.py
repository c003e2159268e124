from datetime import datetime, timezone

from conftest import make_message, make_profile

from inbox_sync.models.enums import InboxFilter, MessageStatus
from inbox_sync.services.grouping import filter_threads, group_messages, thread_key


def test_new_customer_message_creates_unread_thread():
    message = make_message("m1", sender_id="u1", receiver_id="admin")

    threads = group_messages([message], [], viewer_is_admin=True)

    assert len(threads) == 1
    assert threads[0].participant_id == "u1"
    assert threads[0].unread_count == 1
    assert threads[0].last_message.id == "m1"


def test_admin_reply_is_filed_under_receiver():
    messages = [
        make_message("m1", sender_id="u1", receiver_id="admin", minutes=0),
        make_message("m2", sender_id="admin", receiver_id="u1", is_admin_reply=True, minutes=5),
    ]

    threads = group_messages(messages, [], viewer_is_admin=True)

    assert [t.participant_id for t in threads] == ["u1"]
    assert [m.id for m in threads[0].messages] == ["m1", "m2"]
    assert threads[0].last_message.id == "m2"
    # The staff reply is never unread from the staff side.
    assert threads[0].unread_count == 1


def test_unread_count_depends_on_viewer_side():
    messages = [
        make_message("m1", sender_id="u1", receiver_id="admin", minutes=0),
        make_message("m2", sender_id="admin", receiver_id="u1", is_admin_reply=True, minutes=1),
        make_message("m3", sender_id="admin", receiver_id="u1", is_admin_reply=True, minutes=2),
    ]

    admin_view = group_messages(messages, [], viewer_is_admin=True)
    customer_view = group_messages(messages, [], viewer_is_admin=False)

    assert admin_view[0].unread_count == 1
    assert customer_view[0].unread_count == 2


def test_grouping_is_idempotent():
    messages = [
        make_message("m1", sender_id="u1", minutes=3),
        make_message("m2", sender_id="u2", minutes=1),
        make_message("m3", sender_id="admin", receiver_id="u2", is_admin_reply=True, minutes=4),
        make_message("m4", sender_id="u3", minutes=4, status=MessageStatus.READ),
    ]
    profiles = [make_profile("u4", full_name="Dora"), make_profile("u2", full_name="Ben")]

    first = group_messages(messages, profiles, viewer_is_admin=True)
    second = group_messages(messages, profiles, viewer_is_admin=True)

    assert first == second


def test_every_message_lands_in_exactly_one_thread():
    messages = [
        make_message("m1", sender_id="u1", minutes=0),
        make_message("m2", sender_id="admin", receiver_id="u1", is_admin_reply=True, minutes=1),
        make_message("m3", sender_id="u2", minutes=2),
        make_message("m4", sender_id="admin", receiver_id="u3", is_admin_reply=True, minutes=3),
    ]

    threads = group_messages(messages, [], viewer_is_admin=True)

    grouped_ids = [m.id for thread in threads for m in thread.messages]
    assert sorted(grouped_ids) == ["m1", "m2", "m3", "m4"]
    assert len(grouped_ids) == len(set(grouped_ids))


def test_threads_ordered_by_latest_activity():
    messages = [
        make_message("m1", sender_id="u1", minutes=0),
        make_message("m2", sender_id="u2", minutes=10),
        make_message("m3", sender_id="admin", receiver_id="u1", is_admin_reply=True, minutes=20),
    ]

    threads = group_messages(messages, [], viewer_is_admin=True)

    assert [t.participant_id for t in threads] == ["u1", "u2"]


def test_messages_sorted_with_stable_ties():
    messages = [
        make_message("late", sender_id="u1", minutes=5),
        make_message("tie-a", sender_id="u1", minutes=1),
        make_message("tie-b", sender_id="u1", minutes=1),
    ]

    thread = group_messages(messages, [], viewer_is_admin=True)[0]

    assert [m.id for m in thread.messages] == ["tie-a", "tie-b", "late"]


def test_profiles_without_messages_get_empty_threads_for_admin_only():
    messages = [make_message("m1", sender_id="u1")]
    profiles = [make_profile("u1", full_name="Carla"), make_profile("u2", full_name="Ben", email="ben@mail.test")]

    admin_threads = group_messages(messages, profiles, viewer_is_admin=True)
    customer_threads = group_messages(messages, profiles, viewer_is_admin=False)

    empty = [t for t in admin_threads if t.participant_id == "u2"]
    assert len(empty) == 1
    assert empty[0].messages == []
    assert empty[0].unread_count == 0
    assert empty[0].last_message.id == "empty-u2"
    assert admin_threads[-1].participant_id == "u2"
    assert all(t.participant_id != "u2" for t in customer_threads)


def test_empty_thread_placeholder_does_not_depend_on_clock():
    profile = make_profile("u9", email="nine@mail.test")

    first = group_messages([], [profile], viewer_is_admin=True)
    second = group_messages([], [profile], viewer_is_admin=True)

    assert first[0].last_message.created_at == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert first == second


def test_display_name_fallbacks():
    profiles = [
        make_profile("named", full_name="Nadia"),
        make_profile("mail-only", email="only@mail.test"),
        make_profile("bare"),
    ]

    threads = {t.participant_id: t for t in group_messages([], profiles, viewer_is_admin=True)}

    assert threads["named"].name == "Nadia"
    assert threads["mail-only"].name == "only@mail.test"
    assert threads["bare"].name == "User"
    assert threads["bare"].email == ""


def test_name_taken_from_latest_customer_message_without_profile():
    messages = [
        make_message("m1", sender_id="u7", author_name="Old Name", minutes=0),
        make_message("m2", sender_id="u7", author_name="New Name", author_email="u7@mail.test", minutes=3),
        make_message("m3", sender_id="admin", receiver_id="u7", is_admin_reply=True, author_name="Ada", minutes=5),
    ]

    thread = group_messages(messages, [], viewer_is_admin=True)[0]

    assert thread.name == "New Name"
    assert thread.email == "u7@mail.test"


def test_profile_name_wins_over_message_name():
    messages = [make_message("m1", sender_id="u1", author_name="Typed Name")]
    profiles = [make_profile("u1", full_name="Carla Customer", email="carla@mail.test")]

    thread = group_messages(messages, profiles, viewer_is_admin=True)[0]

    assert thread.name == "Carla Customer"
    assert thread.email == "carla@mail.test"


def test_self_message_is_discarded():
    self_message = make_message("m1", sender_id="admin", receiver_id="admin", is_admin_reply=True)
    orphan_reply = make_message("m2", sender_id="admin", receiver_id=None, is_admin_reply=True)

    assert thread_key(self_message) is None
    assert thread_key(orphan_reply) is None
    assert group_messages([self_message, orphan_reply], [], viewer_is_admin=True) == []


def test_anonymous_contact_message_keyed_by_email():
    message = make_message("m1", sender_id=None, author_email="walkin@mail.test", author_name="Walk In")

    threads = group_messages([message], [], viewer_is_admin=True)

    assert threads[0].participant_id == "walkin@mail.test"
    assert threads[0].name == "Walk In"


def test_filter_threads_by_search_and_unread():
    messages = [
        make_message("m1", sender_id="u1", minutes=0),
        make_message("m2", sender_id="u2", minutes=1, status=MessageStatus.READ),
    ]
    profiles = [
        make_profile("u1", full_name="Carla Customer", email="carla@mail.test"),
        make_profile("u2", full_name="Ben Buyer", email="ben@shop.test"),
    ]
    threads = group_messages(messages, profiles, viewer_is_admin=True)

    assert [t.participant_id for t in filter_threads(threads, "CARLA")] == ["u1"]
    assert [t.participant_id for t in filter_threads(threads, "shop.test")] == ["u2"]
    assert [t.participant_id for t in filter_threads(threads, "", InboxFilter.UNREAD)] == ["u1"]
    assert filter_threads(threads, "ben", InboxFilter.UNREAD) == []
    assert len(filter_threads(threads)) == 2
