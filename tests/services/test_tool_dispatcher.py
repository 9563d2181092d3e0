"""Tests for ToolDispatcher."""

from datetime import datetime

import pytest

from advisor.core.exceptions import ExternalServiceError, ToolArgumentError
from advisor.models.records import ToolInvocation
from advisor.services.tool_definitions import TOOL_DEFINITIONS, ToolName
from advisor.services.tool_dispatcher import ToolDispatcher, parse_arguments
from tests.fakes import tool_call

USER = "user-1"


class TestToolDefinitions:
    def test_every_tool_has_a_schema(self):
        names = {d["function"]["name"] for d in TOOL_DEFINITIONS}
        assert names == {t.value for t in ToolName}
        assert len(TOOL_DEFINITIONS) == 11


class TestParseArguments:
    def test_json_string_arguments(self):
        args = parse_arguments(ToolName.SEARCH_EMAILS, '{"query": "baseball"}')
        assert args.query == "baseball"
        assert args.max_results == 10

    def test_invalid_json_raises_argument_error(self):
        with pytest.raises(ToolArgumentError) as exc_info:
            parse_arguments(ToolName.SEARCH_EMAILS, "{not json")
        assert "search_emails" in exc_info.value.message

    def test_missing_required_field(self):
        with pytest.raises(ToolArgumentError) as exc_info:
            parse_arguments(ToolName.SEND_EMAIL, {"to": "a@b.com"})
        assert "subject" in exc_info.value.message


class TestExecute:
    @pytest.mark.asyncio
    async def test_unknown_tool_yields_error_outcome(self, collaborators):
        dispatcher = ToolDispatcher(USER, collaborators)

        outcome = await dispatcher.execute(tool_call("call-1", "book_flight", to="Paris"))

        assert outcome.call_id == "call-1"
        assert not outcome.ok
        assert outcome.error == "Unknown tool: book_flight"

    @pytest.mark.asyncio
    async def test_collaborator_failure_yields_error_outcome(self, collaborators, crm_client):
        crm_client.search.side_effect = RuntimeError("HubSpot is down")
        dispatcher = ToolDispatcher(USER, collaborators)

        outcome = await dispatcher.execute(tool_call("call-2", "search_contacts", query="sara"))

        assert outcome.error == "HubSpot is down"
        assert outcome.result is None

    @pytest.mark.asyncio
    async def test_malformed_arguments_yield_error_outcome(self, collaborators, email_client):
        dispatcher = ToolDispatcher(USER, collaborators)

        outcome = await dispatcher.execute(
            ToolInvocation(id="call-3", name="send_email", arguments="{bad json")
        )

        assert not outcome.ok
        assert outcome.error.startswith("Invalid arguments for send_email")
        email_client.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_emails_default_max_results(self, collaborators, email_client):
        email_client.search.return_value = [{"id": "m1"}]
        dispatcher = ToolDispatcher(USER, collaborators)

        outcome = await dispatcher.execute(tool_call("c", "search_emails", query="bonds"))

        assert outcome.result == [{"id": "m1"}]
        email_client.search.assert_awaited_once_with("bonds", 10)


class TestEmailCredentialFallback:
    @pytest.mark.asyncio
    async def test_session_token_preferred(self, collaborators, email_client):
        dispatcher = ToolDispatcher(USER, collaborators, session_token="session-abc")

        await dispatcher.execute(
            tool_call("c", "send_email", to="a@b.com", subject="Hi", body="Hello")
        )

        collaborators.email.for_session.assert_awaited_once_with(USER, "session-abc")
        collaborators.email.for_user.assert_not_awaited()
        email_client.send.assert_awaited_once_with("a@b.com", "Hi", "Hello")

    @pytest.mark.asyncio
    async def test_rejected_session_token_falls_back_once(self, collaborators, email_client):
        collaborators.email.for_session.side_effect = ExternalServiceError("google", "401")
        dispatcher = ToolDispatcher(USER, collaborators, session_token="expired")

        outcome = await dispatcher.execute(
            tool_call("c", "send_email", to="a@b.com", subject="Hi", body="Hello")
        )

        assert outcome.ok
        collaborators.email.for_user.assert_awaited_once_with(USER)

    @pytest.mark.asyncio
    async def test_no_session_token_uses_stored(self, collaborators):
        dispatcher = ToolDispatcher(USER, collaborators)

        await dispatcher.execute(tool_call("c", "search_emails", query="x"))

        collaborators.email.for_session.assert_not_awaited()
        collaborators.email.for_user.assert_awaited_once_with(USER)

    @pytest.mark.asyncio
    async def test_stored_token_failure_is_error_outcome(self, collaborators):
        collaborators.email.for_user.side_effect = ExternalServiceError(
            "google", "Google account not connected"
        )
        dispatcher = ToolDispatcher(USER, collaborators)

        outcome = await dispatcher.execute(tool_call("c", "search_emails", query="x"))

        assert outcome.error == "Google account not connected"


class TestCrmTools:
    @pytest.mark.asyncio
    async def test_create_contact_drops_empty_fields(self, collaborators, crm_client):
        dispatcher = ToolDispatcher(USER, collaborators)

        await dispatcher.execute(
            tool_call("c", "create_contact", email="new@example.com", firstname="Nia")
        )

        crm_client.create.assert_awaited_once_with(
            {"email": "new@example.com", "firstname": "Nia"}
        )

    @pytest.mark.asyncio
    async def test_add_contact_note_uses_camel_case_id(self, collaborators, crm_client):
        dispatcher = ToolDispatcher(USER, collaborators)

        await dispatcher.execute(
            tool_call("c", "add_contact_note", contactId="501", note="Prefers mornings")
        )

        crm_client.add_note.assert_awaited_once_with("501", "Prefers mornings")


class TestCalendarTools:
    @pytest.mark.asyncio
    async def test_available_slots_parses_dates(self, collaborators, calendar_client):
        dispatcher = ToolDispatcher(USER, collaborators)

        await dispatcher.execute(tool_call(
            "c", "get_available_slots",
            startDate="2025-03-04T09:00:00-05:00", endDate="2025-03-04T17:00:00-05:00",
        ))

        start, end, duration = calendar_client.find_free_slots.await_args.args
        assert isinstance(start, datetime) and isinstance(end, datetime)
        assert duration == 60

    @pytest.mark.asyncio
    async def test_create_event_passes_attendees(self, collaborators, calendar_client):
        dispatcher = ToolDispatcher(USER, collaborators)

        await dispatcher.execute(tool_call(
            "c", "create_calendar_event",
            summary="Review", start="2025-03-04T10:00:00", end="2025-03-04T11:00:00",
            attendees=["sara@example.com"],
        ))

        kwargs = calendar_client.create_event.await_args.kwargs
        assert kwargs["attendees"] == ["sara@example.com"]
        assert kwargs["description"] is None


class TestTaskTools:
    @pytest.mark.asyncio
    async def test_create_task_defaults(self, collaborators, store):
        dispatcher = ToolDispatcher(USER, collaborators)

        outcome = await dispatcher.execute(
            tool_call("c", "create_task", title="Follow up", description="Call Sara")
        )

        task = store.tasks[outcome.result["id"]]
        assert task["priority"] == "MEDIUM"
        assert task["status"] == "PENDING"
        assert task["user_id"] == USER

    @pytest.mark.asyncio
    async def test_completing_a_task_stamps_completion_time(self, collaborators, store):
        dispatcher = ToolDispatcher(USER, collaborators)
        created = await dispatcher.execute(
            tool_call("c1", "create_task", title="T", description="D")
        )
        task_id = created.result["id"]

        await dispatcher.execute(
            tool_call("c2", "update_task", taskId=task_id, status="COMPLETED", result="done")
        )

        task = store.tasks[task_id]
        assert task["status"] == "COMPLETED"
        assert task["result"] == "done"
        assert datetime.fromisoformat(task["completed_at"])

    @pytest.mark.asyncio
    async def test_other_status_does_not_stamp(self, collaborators, store):
        dispatcher = ToolDispatcher(USER, collaborators)
        created = await dispatcher.execute(
            tool_call("c1", "create_task", title="T", description="D")
        )

        await dispatcher.execute(
            tool_call("c2", "update_task", taskId=created.result["id"], status="IN_PROGRESS")
        )

        assert "completed_at" not in store.tasks[created.result["id"]]
