"""
Multi-persona meeting room engine.

Modules:
- manager: MeetingRoomManager action dispatch + lifecycle state machine
- scheduler: round-robin speaker selection + accelerated time budget
- agents: PersonaAgent character prompt, transcript translation, response parsing
- summarizer: closing summary with fixed-text fallback
- store: SQLAlchemy-backed rooms/participants/messages/personas
- states: RoomStatus/Action/MessageRole + transition table + ActionResult
- llm: OpenAI chat client via LangChain + completion provider
- generator: LLM persona generation
- driver: polling loop that repeatedly dispatches next_turn
- personas: lenient pydantic schemas for persona profiles
- config: env-driven Settings and prompt loading
- errors: MeetingRoomError hierarchy tagged with an ErrorKind
"""
