import pytest

from summit_portal.api import messages as messages_api
from summit_portal.models.models import Message, OwnerMessageMap
from summit_portal.schemas.schemas import ContactSubmission
from summit_portal.services import messages


def test_owner_message_maps_both_parties(db_session, create_owner, sent_emails):
    sender = create_owner(first_name="Avery")
    receiver = create_owner(first_name="Blake")

    message, debug = messages.send_owner_message(db_session, sender, receiver.id, "Fence repair on Friday?")
    db_session.commit()

    mappings = {
        mapping.owner_id: mapping
        for mapping in db_session.query(OwnerMessageMap).filter(OwnerMessageMap.message_id == message.id)
    }
    assert set(mappings) == {sender.id, receiver.id}
    assert mappings[sender.id].is_read is True
    assert mappings[receiver.id].is_read is False
    assert debug["emailSent"] is True
    assert sent_emails[0]["to"] == [receiver.email]
    assert sent_emails[0]["subject"] == f"New message from {sender.full_name}"


def test_message_to_self_creates_single_mapping(db_session, create_owner, sent_emails):
    owner = create_owner()

    message, debug = messages.send_owner_message(db_session, owner, owner.id, "Note to self")

    assert db_session.query(OwnerMessageMap).filter(OwnerMessageMap.message_id == message.id).count() == 1
    assert debug["emailSent"] is False
    assert sent_emails == []


def test_message_email_respects_preferences(db_session, create_owner, sent_emails):
    sender = create_owner()
    receiver = create_owner()
    receiver.notification_preference.messages_enabled = False
    db_session.commit()

    _, debug = messages.send_owner_message(db_session, sender, receiver.id, "Hello")

    assert debug["emailSent"] is False
    assert sent_emails == []


def test_unknown_recipient_or_parent_is_rejected(db_session, create_owner):
    sender = create_owner()
    receiver = create_owner()

    with pytest.raises(LookupError, match="Recipient not found"):
        messages.send_owner_message(db_session, sender, 999, "Hi")
    with pytest.raises(LookupError, match="Parent message not found"):
        messages.send_owner_message(db_session, sender, receiver.id, "Hi", parent_id=999)


def test_system_message_has_system_sender(db_session, create_owner):
    owner = create_owner()

    message = messages.send_system_message(db_session, [owner.id, owner.id], "Pool opens Monday", subject="Pool")
    db_session.commit()

    assert message.sender_id is None
    assert isinstance(messages.sender_of(message), messages.SystemSender)
    assert messages.sender_name(message) == "System"
    assert db_session.query(OwnerMessageMap).filter(OwnerMessageMap.message_id == message.id).count() == 1


def test_delete_only_removes_callers_copy(db_session, create_owner):
    sender = create_owner()
    receiver = create_owner()
    message, _ = messages.send_owner_message(db_session, sender, receiver.id, "Keep this")

    messages.delete_for_owner(db_session, receiver.id, message.id)
    db_session.commit()

    assert messages.inbox(db_session, receiver.id) == []
    assert [row[0].id for row in messages.inbox(db_session, sender.id)] == [message.id]
    assert db_session.get(Message, message.id) is not None

    with pytest.raises(LookupError):
        messages.mark_read(db_session, receiver.id, message.id)


def test_thread_collects_replies_visible_to_owner(db_session, create_owner):
    alice = create_owner()
    bob = create_owner()
    carol = create_owner()
    root, _ = messages.send_owner_message(db_session, alice, bob.id, "Root")
    reply, _ = messages.send_owner_message(db_session, bob, alice.id, "Reply", parent_id=root.id)
    nested, _ = messages.send_owner_message(db_session, alice, bob.id, "Nested", parent_id=reply.id)
    side, _ = messages.send_owner_message(db_session, carol, bob.id, "Side", parent_id=root.id)
    db_session.commit()

    alice_thread = [message.id for message, _ in messages.thread(db_session, alice.id, nested.id)]
    bob_thread = [message.id for message, _ in messages.thread(db_session, bob.id, reply.id)]

    assert alice_thread == [root.id, reply.id, nested.id]
    assert bob_thread == [root.id, reply.id, nested.id, side.id]
    with pytest.raises(LookupError):
        messages.thread(db_session, carol.id, root.id)


def test_mark_read_updates_only_callers_mapping(db_session, create_owner):
    sender = create_owner()
    receiver = create_owner()
    message, _ = messages.send_owner_message(db_session, sender, receiver.id, "Read me")

    messages.mark_read(db_session, receiver.id, message.id)
    db_session.commit()

    (_, mapping), = messages.inbox(db_session, receiver.id)
    assert mapping.is_read is True


def test_search_skips_unregistered_and_self(db_session, create_owner):
    me = create_owner(first_name="Riley")
    other = create_owner(first_name="Rileigh")
    create_owner(first_name="Rilo", is_temporary_password=True)

    results = messages.search_owners(db_session, "ril", exclude_owner_id=me.id)
    assert [owner.id for owner in results] == [other.id]


def test_contact_form_reaches_active_board(db_session, create_owner, create_board_member):
    member = create_owner()
    create_board_member(member)
    create_owner()

    response = messages_api.submit_contact(
        ContactSubmission(name="Visitor", email="visitor@example.com", subject="Parking", message="Where do guests park?"),
        db_session,
    )

    message = db_session.get(Message, response["message_id"])
    assert message.subject == "Contact Form: Parking"
    recipients = [mapping.owner_id for mapping in message.recipients]
    assert recipients == [member.id]
