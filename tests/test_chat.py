"""Tests for department and task chat."""
import pytest
from taskflow_core import crud, models
from taskflow_core.errors import NotFoundError, ValidationError


class TestDepartmentChat:
    """Test department chat messages."""

    def test_post_and_list(self, db, make_user):
        """Test that messages are listed in posting order per department."""
        a, b = make_user(department_id=1), make_user(department_id=2)
        first = crud.post_department_message(db, 1, a.id, "  morning  ")
        crud.post_department_message(db, 2, b.id, "elsewhere")
        second = crud.post_department_message(db, 1, a.id, "standup at 10")

        messages = crud.list_department_messages(db, 1)

        assert [m.id for m in messages] == [first.id, second.id]
        assert messages[0].body == "morning"
        assert messages[0].scope_type == models.ChatScope.DEPARTMENT
        assert messages[0].author_name == a.full_name

    def test_empty_body(self, db, make_user):
        """Test that a blank message is rejected."""
        user = make_user()
        with pytest.raises(ValidationError):
            crud.post_department_message(db, 1, user.id, "   ")

    def test_unknown_department(self, db, make_user):
        """Test that unknown departments are not found."""
        user = make_user()
        with pytest.raises(NotFoundError):
            crud.post_department_message(db, 9, user.id, "hi")
        with pytest.raises(NotFoundError):
            crud.list_department_messages(db, 9)


class TestTaskChat:
    """Test task chat messages and attachments."""

    def test_attachment_only(self, db, make_user, make_project, make_task):
        """Test that a file without text is a valid message."""
        dev = make_user()
        task = make_task(make_project([dev], [dev]), [dev], [dev])

        message = crud.post_task_message(
            db, task.id, dev.id, "", file_name="log.txt", file_path="/data/messages/message_1.txt", file_size=3
        )

        assert crud.get_message_attachment(db, message.id).file_name == "log.txt"
        assert [m.id for m in crud.list_task_messages(db, task.id)] == [message.id]

    def test_text_without_attachment(self, db, make_user, make_project, make_task):
        """Test that asking for a missing attachment is not found."""
        dev = make_user()
        task = make_task(make_project([dev], [dev]), [dev], [dev])
        message = crud.post_task_message(db, task.id, dev.id, "text only")
        with pytest.raises(NotFoundError):
            crud.get_message_attachment(db, message.id)
        with pytest.raises(NotFoundError):
            crud.get_message_attachment(db, message.id + 100)

    def test_neither_text_nor_file(self, db, make_user, make_project, make_task):
        """Test that an empty message is rejected."""
        dev = make_user()
        task = make_task(make_project([dev], [dev]), [dev], [dev])
        with pytest.raises(ValidationError):
            crud.post_task_message(db, task.id, dev.id, " ")

    def test_unknown_task(self, db, make_user):
        """Test that unknown tasks are not found."""
        dev = make_user()
        with pytest.raises(NotFoundError):
            crud.list_task_messages(db, 5)
        with pytest.raises(NotFoundError):
            crud.post_task_message(db, 5, dev.id, "hi")
