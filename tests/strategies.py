"""Hypothesis strategies for Strand messages and transcripts."""

from hypothesis import strategies as st

from strand.protocols import ContentPart, Message, Role, ToolCall

message_text = st.text(
    min_size=0,
    max_size=200,
    alphabet=st.characters(whitelist_categories=("L", "N", "P", "Z")),
)

roles = st.sampled_from(list(Role))

tool_calls = st.builds(
    ToolCall,
    id=st.text(alphabet="abcdef0123456789", min_size=4, max_size=8).map(lambda s: f"call_{s}"),
    name=st.sampled_from(["search", "read_file", "spawn_agent"]),
    arguments=st.dictionaries(st.sampled_from(["q", "path"]), message_text, max_size=2),
)


@st.composite
def messages(draw, role=roles):
    r = draw(role)
    text = draw(message_text)
    if r is Role.TOOL:
        return Message.tool(draw(st.text(alphabet="xyz", min_size=1, max_size=4)), text)
    if r is Role.ASSISTANT:
        calls = draw(st.lists(tool_calls, max_size=2))
        return Message.assistant(text, calls or None)
    return Message(role=r, content=text)


transcripts = st.lists(messages(), min_size=0, max_size=30)

tool_messages = st.builds(
    Message.tool,
    st.just("call_1"),
    st.text(min_size=0, max_size=400),
)

structured_tool_messages = st.builds(
    lambda parts: Message(role=Role.TOOL, content=tuple(parts), tool_call_id="call_1"),
    st.lists(
        st.one_of(
            st.builds(ContentPart, type=st.just("text"), text=st.text(max_size=100)),
            st.builds(ContentPart, type=st.just("image"), url=st.just("https://x/img.png")),
        ),
        min_size=1,
        max_size=5,
    ),
)
