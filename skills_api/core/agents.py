"""AI agents that can install Agent Skills, as listed on skills.sh."""

from __future__ import annotations

from dataclasses import asdict, dataclass

ICON_BASE_URL = "https://skills.sh/agents"


@dataclass(frozen=True, slots=True)
class SupportedAgent:
    id: str
    name: str
    url: str
    description: str

    @property
    def icon_url(self) -> str:
        return f"{ICON_BASE_URL}/{self.id}.svg"

    def to_dict(self) -> dict[str, str]:
        payload = asdict(self)
        payload["iconUrl"] = self.icon_url
        return payload


SUPPORTED_AGENTS: tuple[SupportedAgent, ...] = (
    SupportedAgent("amp", "AMP", "https://ampcode.com/", "AI-powered code assistant"),
    SupportedAgent("antigravity", "Antigravity", "https://antigravity.google/", "Google AI coding assistant"),
    SupportedAgent("claude-code", "Claude Code", "https://claude.ai/code", "Anthropic Claude for coding"),
    SupportedAgent("clawdbot", "Clawdbot", "https://github.com/clawdbot", "Claude-based coding bot"),
    SupportedAgent("cline", "Cline", "https://github.com/cline/cline", "VS Code AI assistant"),
    SupportedAgent("codex", "Codex", "https://openai.com/codex", "OpenAI Codex"),
    SupportedAgent("cursor", "Cursor", "https://cursor.sh", "AI-first code editor"),
    SupportedAgent("droid", "Droid", "https://droid.dev", "AI coding assistant"),
    SupportedAgent("gemini", "Gemini", "https://gemini.google.com", "Google Gemini AI"),
    SupportedAgent("copilot", "GitHub Copilot", "https://github.com/features/copilot", "GitHub AI pair programmer"),
    SupportedAgent("goose", "Goose", "https://github.com/block/goose", "Block AI agent"),
    SupportedAgent("kilo", "Kilo", "https://kilo.dev", "AI coding assistant"),
    SupportedAgent("kiro-cli", "Kiro CLI", "https://kiro.dev", "Command-line AI assistant"),
    SupportedAgent("opencode", "OpenCode", "https://opencode.ai", "Open-source AI coding"),
    SupportedAgent("roo", "Roo", "https://roo.dev", "AI development assistant"),
    SupportedAgent("trae", "Trae", "https://trae.ai", "AI coding agent"),
    SupportedAgent("windsurf", "Windsurf", "https://codeium.com/windsurf", "Codeium AI IDE"),
)


def get_agent(agent_id: str) -> SupportedAgent | None:
    for agent in SUPPORTED_AGENTS:
        if agent.id == agent_id:
            return agent
    return None
