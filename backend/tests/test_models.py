"""
Tests for the conversation and file models.
"""

import pytest

from app.models.chat import (
    DEFAULT_TITLE,
    Conversation,
    Message,
    MessageNotFound,
    apply_message_edit,
    derive_title,
)
from app.models.file import FileRecord, ImageMetadata, PdfMetadata, ProcessingStatus


def _thread():
    return [
        Message(id="m1", role="user", content="What is 2+2?"),
        Message(id="m2", role="assistant", content="4"),
        Message(id="m3", role="user", content="And 3+3?"),
    ]


class TestTitles:

    def test_short_content_is_used_as_is(self):
        assert derive_title("  Hello there  ") == "Hello there"

    def test_long_content_is_cut_at_thirty_characters(self):
        content = "Explain the difference between TCP and UDP please"
        assert derive_title(content) == content[:30] + "..."

    def test_blank_content_keeps_default_title(self):
        assert derive_title("   ") == DEFAULT_TITLE

    def test_first_user_message_titles_the_conversation(self):
        conversation = Conversation(user_id="u")
        conversation.append_message(Message(role="user", content="Plan a trip to Lisbon"))
        conversation.append_message(Message(role="assistant", content="Sure"))
        conversation.append_message(Message(role="user", content="Something else"))

        assert conversation.title == "Plan a trip to Lisbon"

    def test_assistant_message_does_not_title(self):
        conversation = Conversation(user_id="u")
        conversation.append_message(Message(role="assistant", content="Welcome!"))

        assert conversation.title == DEFAULT_TITLE

    def test_append_bumps_updated_at(self):
        conversation = Conversation(user_id="u")
        before = conversation.updated_at
        conversation.append_message(Message(role="user", content="hi"))

        assert conversation.updated_at >= before


class TestMessageEdit:

    def test_edit_truncates_after_target(self):
        conversation = Conversation(user_id="u", messages=_thread())

        conversation.edit_message("m2", "X")

        assert [m.id for m in conversation.messages] == ["m1", "m2"]
        assert conversation.messages[1].content == "X"
        assert conversation.messages[1].edited is True

    def test_edit_records_previous_content(self):
        messages = _thread()

        edited = apply_message_edit(messages, "m1", "What is 5+5?")

        assert edited[0].edit_history[0].content == "What is 2+2?"
        assert len(edited) == 1

    def test_edit_leaves_input_untouched(self):
        messages = _thread()

        apply_message_edit(messages, "m2", "X")

        assert len(messages) == 3
        assert messages[1].content == "4"
        assert messages[1].edited is False

    def test_edit_twice_keeps_both_versions(self):
        conversation = Conversation(user_id="u", messages=_thread())

        conversation.edit_message("m1", "first edit")
        conversation.edit_message("m1", "second edit")

        history = [record.content for record in conversation.messages[0].edit_history]
        assert history == ["What is 2+2?", "first edit"]

    def test_unknown_message_raises(self):
        with pytest.raises(MessageNotFound):
            apply_message_edit(_thread(), "missing", "X")


class TestApiShape:

    def test_conversation_serializes_camel_case_without_owner(self):
        conversation = Conversation(user_id="u", messages=_thread())

        data = conversation.to_api()

        assert "userId" not in data
        assert "createdAt" in data and "updatedAt" in data
        assert data["messages"][0]["editHistory"] == []

    def test_message_accepts_camel_case_input(self):
        message = Message.model_validate({
            "role": "user",
            "content": "see attached",
            "attachments": [{"fileName": "a.txt", "fileUrl": "https://x/a.txt", "fileType": "text/plain"}],
        })

        assert message.attachments[0].file_name == "a.txt"

    def test_file_metadata_is_selected_by_category(self):
        record = FileRecord.model_validate({
            "userId": "u",
            "fileName": "report.pdf",
            "originalName": "report.pdf",
            "fileType": "application/pdf",
            "fileSize": 100,
            "sourceUrl": "https://files/report.pdf",
            "metadata": {"category": "pdf", "pageCount": 3},
        })

        assert isinstance(record.metadata, PdfMetadata)
        assert record.metadata.page_count == 3
        assert record.processing_status == ProcessingStatus.PROCESSING

    def test_file_metadata_round_trips_through_database_shape(self):
        record = FileRecord(
            user_id="u", file_name="p.png", original_name="p.png", file_type="image/png",
            file_size=10, source_url="https://files/p.png",
            metadata=ImageMetadata(width=4, height=3, format="png"),
        )

        restored = FileRecord.model_validate({**record.model_dump(), "metadata": record.metadata.model_dump(mode="json")})

        assert isinstance(restored.metadata, ImageMetadata)
        assert restored.metadata.width == 4
