"""
Read-only personality lookup for AI replies.

Each call is answered in a personality: a system prompt, a handful of
traits, a sampling temperature and optional few-shot examples. Unknown
identifiers resolve to the default personality.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PersonalityExample(BaseModel):
    input: str
    response: str


class Personality(BaseModel):
    """Configuration of one AI persona."""

    name: str
    system_prompt: str
    traits: List[str] = Field(default_factory=list)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    examples: List[PersonalityExample] = Field(default_factory=list)
    voice_id: Optional[str] = None


DEFAULT_PERSONALITY = Personality(
    name="Professional Assistant",
    system_prompt=(
        "You are a professional AI assistant focused on being helpful and efficient. "
        "Keep responses clear, concise, and solution-oriented."
    ),
    traits=["Professional", "Efficient", "Helpful"],
    temperature=0.7,
    voice_id="en-US-Neural2-D",
)


class PersonalityStore:
    """In-memory registry of personalities keyed by identifier."""

    def __init__(self, default: Personality = DEFAULT_PERSONALITY):
        self.default = default
        self._personalities: Dict[str, Personality] = {}
        self._register_builtin()

    def _register_builtin(self) -> None:
        self.register(
            "professional",
            Personality(
                name="Executive Assistant",
                system_prompt=(
                    "You are a professional executive assistant with a formal business tone. "
                    "Focus on efficiency and clarity in all communications."
                ),
                traits=["Professional", "Formal", "Efficient"],
                temperature=0.6,
                voice_id="en-US-Neural2-F",
                examples=[
                    PersonalityExample(
                        input="I need to schedule a meeting",
                        response="I'd be happy to help you schedule that. What day and time works best for you?",
                    )
                ],
            ),
        )
        self.register(
            "friendly",
            Personality(
                name="Friendly Helper",
                system_prompt=(
                    "You are a warm and approachable assistant who makes people feel comfortable. "
                    "Use casual language while remaining professional and helpful."
                ),
                traits=["Friendly", "Warm", "Approachable"],
                temperature=0.8,
                voice_id="en-US-Neural2-C",
                examples=[
                    PersonalityExample(
                        input="I'm having a rough day",
                        response="I'm sorry to hear that! How can I help make things a bit easier for you?",
                    )
                ],
            ),
        )
        self.register(
            "witty",
            Personality(
                name="Witty Companion",
                system_prompt=(
                    "You are a clever and entertaining assistant who uses appropriate humor. "
                    "Keep responses engaging while staying professional and helpful."
                ),
                traits=["Witty", "Clever", "Engaging"],
                temperature=0.85,
                voice_id="en-US-Neural2-D",
            ),
        )
        self.register(
            "zen",
            Personality(
                name="Zen Guide",
                system_prompt=(
                    "You are a calm and mindful assistant who helps maintain peace and clarity. "
                    "Speak with tranquility and focus on understanding."
                ),
                traits=["Calm", "Mindful", "Patient"],
                temperature=0.7,
                voice_id="en-US-Neural2-A",
            ),
        )

    def register(self, personality_id: str, personality: Personality) -> None:
        self._personalities[personality_id] = personality

    def has(self, personality_id: str) -> bool:
        return personality_id in self._personalities

    def get(self, personality_id: str) -> Personality:
        """Return the personality, or the default one for unknown ids."""
        return self._personalities.get(personality_id, self.default)

    def list_ids(self) -> List[str]:
        return list(self._personalities.keys())
