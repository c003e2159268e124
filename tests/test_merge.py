from conftest import make_message

from inbox_sync.models.enums import MessageStatus
from inbox_sync.services.merge import merge_messages, with_status


def test_fetch_and_realtime_copies_converge():
    fetched = make_message("m1", minutes=1)
    pushed = make_message("m1", minutes=1)
    other = make_message("m0", minutes=0)

    fetch_first = merge_messages(merge_messages([other], [fetched]), [pushed])
    push_first = merge_messages(merge_messages([other], [pushed]), [fetched])

    assert [m.id for m in fetch_first] == ["m0", "m1"]
    assert fetch_first == push_first


def test_status_never_goes_back_to_unread():
    read = make_message("m1", status=MessageStatus.READ)
    stale = make_message("m1", status=MessageStatus.UNREAD)

    assert merge_messages([read], [stale])[0].status == MessageStatus.READ
    assert merge_messages([stale], [read])[0].status == MessageStatus.READ


def test_merge_resorts_out_of_order_arrivals():
    current = [make_message("a", minutes=0), make_message("c", minutes=10)]
    incoming = [make_message("d", minutes=15), make_message("b", minutes=5)]

    merged = merge_messages(current, incoming)

    assert [m.id for m in merged] == ["a", "b", "c", "d"]
    times = [m.created_at for m in merged]
    assert times == sorted(times)


def test_duplicates_inside_one_batch_collapse():
    batch = [make_message("m1"), make_message("m1"), make_message("m2", minutes=1)]

    assert [m.id for m in merge_messages([], batch)] == ["m1", "m2"]


def test_with_status_only_touches_listed_ids():
    messages = [make_message("m1"), make_message("m2", minutes=1)]

    updated = with_status(messages, ["m2"], MessageStatus.READ)

    assert [m.status for m in updated] == [MessageStatus.UNREAD, MessageStatus.READ]
    assert messages[1].status == MessageStatus.UNREAD
