# Copyright (c) Microsoft. All rights reserved.

from pytest import raises

from aiglue import (
    BaseChatClient,
    ChatClientProtocol,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatResponseUpdate,
    ChatToolMode,
    FunctionCallContent,
    FunctionResultContent,
    Role,
    TextContent,
    ai_function,
    prepare_messages,
    use_function_invocation,
)
from aiglue._tools import FUNCTION_INVOKING_CHAT_CLIENT_MARKER
from aiglue.exceptions import ChatClientInitializationError


def test_chat_client_type(chat_client_base):
    assert isinstance(chat_client_base, ChatClientProtocol)
    assert isinstance(chat_client_base, BaseChatClient)
    assert chat_client_base.service_url() is None


def test_prepare_messages():
    assert prepare_messages("hi")[0].role == Role.USER
    message = ChatMessage(role="system", text="be brief")
    assert prepare_messages(message) == [message]
    prepared = prepare_messages([message, "question"])
    assert [m.role for m in prepared] == [Role.SYSTEM, Role.USER]
    assert prepared[1].text == "question"


async def test_chat_client_get_response(chat_client_base):
    response = await chat_client_base.get_response("Hello")
    assert response.text == "test response - Hello"


async def test_chat_client_get_streaming_response(chat_client_base):
    updates = [update async for update in chat_client_base.get_streaming_response("Hello")]
    assert [update.text for update in updates] == ["update - Hello"]


async def test_chat_client_builds_options(chat_client_base, ai_tool):
    await chat_client_base.get_response("Hello", temperature=0.5, max_tokens=10, stop="END", tools=[ai_tool])

    options = chat_client_base.received_options[0]
    assert options.temperature == 0.5
    assert options.max_tokens == 10
    assert options.stop_sequences == ["END"]
    assert options.tool_choice == ChatToolMode.AUTO
    assert options.tools == [ai_tool]


async def test_chat_client_without_tools_turns_tool_choice_off(chat_client_base):
    await chat_client_base.get_response("Hello", tool_choice="required")

    options = chat_client_base.received_options[0]
    assert options.tools is None
    assert options.tool_choice == ChatToolMode.NONE


async def test_chat_client_uses_chat_options(chat_client_base, ai_tool):
    chat_options = ChatOptions(model_id="small", tools=[ai_tool])

    await chat_client_base.get_response("Hello", chat_options=chat_options)

    options = chat_client_base.received_options[0]
    assert options.model_id == "small"
    assert options.tool_choice == ChatToolMode.AUTO
    # the caller's options are copied, not changed
    assert chat_options.tool_choice is None


async def test_chat_client_tool_choice_overrides_chat_options(chat_client_base, ai_tool):
    await chat_client_base.get_response(
        "Hello", chat_options=ChatOptions(tools=[ai_tool], tool_choice="auto"), tool_choice="none"
    )
    assert chat_client_base.received_options[0].tool_choice == ChatToolMode.NONE


async def test_chat_client_option_kwargs_override_chat_options(chat_client_base):
    chat_options = ChatOptions(temperature=0.1, top_p=0.5)

    await chat_client_base.get_response("Hello", chat_options=chat_options, temperature=0.9, max_tokens=None)

    options = chat_client_base.received_options[0]
    assert (options.temperature, options.top_p, options.max_tokens) == (0.9, 0.5, None)
    assert chat_options.temperature == 0.1


async def test_chat_client_rejects_wrong_chat_options(chat_client_base):
    with raises(TypeError):
        await chat_client_base.get_response("Hello", chat_options={"temperature": 1})


def test_use_function_invocation_marks_class(chat_client_with_functions):
    assert getattr(type(chat_client_with_functions), FUNCTION_INVOKING_CHAT_CLIENT_MARKER) is True
    # decorating twice is a no-op
    assert use_function_invocation(type(chat_client_with_functions)) is type(chat_client_with_functions)


def test_use_function_invocation_requires_methods():
    class NotAClient:
        pass

    with raises(ChatClientInitializationError):
        use_function_invocation(NotAClient)  # type: ignore[type-var]


async def test_function_invocation_loop(chat_client_with_functions):
    exec_counter = 0

    @ai_function(name="test_function")
    def ai_func(arg1: str) -> str:
        nonlocal exec_counter
        exec_counter += 1
        return f"Processed {arg1}"

    chat_client_with_functions.run_responses = [
        ChatResponse(
            messages=ChatMessage(
                role="assistant",
                contents=[FunctionCallContent(call_id="1", name="test_function", arguments='{"arg1": "value1"}')],
            )
        ),
        ChatResponse(messages=ChatMessage(role="assistant", text="done")),
    ]

    response = await chat_client_with_functions.get_response("hello", tools=[ai_func])

    assert exec_counter == 1
    assert len(response.messages) == 3
    assert isinstance(response.messages[0].contents[0], FunctionCallContent)
    assert response.messages[1].role == Role.TOOL
    result = response.messages[1].contents[0]
    assert isinstance(result, FunctionResultContent)
    assert result.result == "Processed value1"
    assert response.messages[2].text == "done"
    assert chat_client_with_functions.call_count == 2


async def test_function_invocation_loop_passes_custom_args(chat_client_with_functions):
    received: list[str] = []

    @ai_function
    def whoami(user_id: str) -> str:
        received.append(user_id)
        return user_id

    chat_client_with_functions.run_responses = [
        ChatResponse(
            messages=ChatMessage(
                role="assistant", contents=[FunctionCallContent(call_id="1", name="whoami", arguments="{}")]
            )
        ),
        ChatResponse(messages=ChatMessage(role="assistant", text="done")),
    ]

    await chat_client_with_functions.get_response("who am I?", tools=[whoami], user_id="user-42")

    assert received == ["user-42"]


async def test_function_invocation_stops_after_max_iterations(chat_client_with_functions, ai_tool):
    call = ChatResponse(
        messages=ChatMessage(
            role="assistant",
            contents=[FunctionCallContent(call_id="1", name="generic_tool", arguments='{"name": "x"}')],
        )
    )
    chat_client_with_functions.run_responses = [call.model_copy(deep=True) for _ in range(10)] + [
        ChatResponse(messages=ChatMessage(role="assistant", text="final"))
    ]

    response = await chat_client_with_functions.get_response("loop", tools=[ai_tool])

    assert chat_client_with_functions.call_count == 11
    assert chat_client_with_functions.received_options[-1].tool_choice == ChatToolMode.NONE
    assert chat_client_with_functions.received_options[-1].tools is None
    assert response.messages[-1].text == "final"


async def test_function_invocation_streaming(chat_client_with_functions, add_tool):
    chat_client_with_functions.streaming_responses = [
        [
            ChatResponseUpdate(text="Adding.", role="assistant"),
            ChatResponseUpdate(
                contents=[FunctionCallContent(call_id="1", name="simple_function", arguments='{"x": 1, "y": 2}')],
            ),
        ],
        [ChatResponseUpdate(contents=[TextContent("three")], role="assistant")],
    ]

    updates = [update async for update in chat_client_with_functions.get_streaming_response("add", tools=[add_tool])]

    assert len(updates) == 4
    tool_update = updates[2]
    assert tool_update.role == Role.TOOL
    assert isinstance(tool_update.contents[0], FunctionResultContent)
    assert tool_update.contents[0].result == 3
    assert updates[3].text == "three"


async def test_function_invocation_streaming_without_tools(chat_client_with_functions):
    chat_client_with_functions.streaming_responses = [
        [ChatResponseUpdate(contents=[FunctionCallContent(call_id="1", name="fn", arguments="{}")], role="assistant")]
    ]

    updates = [update async for update in chat_client_with_functions.get_streaming_response("hi")]

    assert len(updates) == 1
    assert chat_client_with_functions.call_count == 1
