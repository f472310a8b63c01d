"""
Game master prompt assembly.

Folds a bounded slice of world state into the prompt the oracle
adjudicates against. Every prompt asks for strict JSON so the sanitizer
has something deterministic to parse.
"""

from dataclasses import dataclass, field

from ..state.schema import DiplomaticRelation, GameEvent, LogEntry


# Context window sizes handed to the oracle
HISTORY_WINDOW = 15
EVENTS_WINDOW = 10
# Of the history window, only the tail is written into the prompt
PROMPT_HISTORY_LINES = 8

SYSTEM_PROMPT = (
    "You are a JSON-only response bot for a strategy game. "
    "Never explain your answer, only return JSON."
)

DIFFICULTY_PROFILES: dict[str, str] = {
    "Sandbox": "SANDBOX: Almost everything succeeds. AI nations are cooperative. Consequences are mild. Reward creativity.",
    "Easy": "EASY: Actions succeed with basic reasoning. AI is accommodating. Mistakes cost setbacks, not collapse.",
    "Realistic": "REALISTIC: Actions need proper planning. AI nations have authentic motivations. Diplomacy requires leverage. Wars need logistics.",
    "Hardcore": "HARDCORE: Detailed multi-step planning required. AI is skeptical and strategic. One major blunder can cascade.",
    "Impossible": "IMPOSSIBLE: Multi-turn preparation needed. AI is ruthless. Economies are fragile. A single mistake can mean collapse.",
}

# (exclusive upper year, summary); the last entry covers everything after
ERA_CONTEXT: list[tuple[int | None, str]] = [
    (500, "ANCIENT: Empires, city-states and tribal confederations. Power follows river valleys and trade routes. Nomadic threats. Dynastic succession crises."),
    (1500, "MEDIEVAL: Feudal hierarchies, caliphates, Byzantium, Mongol conquests, Chinese dynasties. The Church as a superpower. Silk Road trade. Plague reshapes society."),
    (1800, "EARLY MODERN: Absolutist monarchies, colonial empires, balance of power. Westphalian sovereignty. Mercantilism. Enlightenment seeds revolution."),
    (1945, "MODERN: Nation-states, industrialized warfare, imperial scramble. World wars collapse empires. Rise of fascism and communism. Decolonization begins."),
    (1991, "COLD WAR: NATO against the Warsaw Pact. Nuclear deterrence. Proxy wars. Decolonization. Sino-Soviet split. Space race. Oil shocks."),
    (2026, "CONTEMPORARY: US-China competition. NATO expansion. EU integration. BRICS rising. Taiwan flashpoint. Cyber and information warfare. Climate crisis."),
    (None, "FUTURE: Multipolar disorder. AI revolution. Climate migration. Space militarization. Cyber as the primary conflict domain. Demographic divergence."),
]

RELATION_TYPES = "neutral, friendly, allied, hostile, war, vassal"


@dataclass
class TurnContext:
    """Everything the oracle sees for one command."""

    command: str
    year: int
    player_name: str
    scenario: str = ""
    difficulty: str = "Realistic"
    history: list[LogEntry] = field(default_factory=list)
    events: list[GameEvent] = field(default_factory=list)
    relations: list[DiplomaticRelation] = field(default_factory=list)
    province_summary: list[dict] = field(default_factory=list)
    story_so_far: str = ""


def era_context(year: int) -> str:
    for limit, summary in ERA_CONTEXT:
        if limit is None or year < limit:
            return summary
    return ERA_CONTEXT[-1][1]


def difficulty_profile(difficulty: str) -> str:
    return DIFFICULTY_PROFILES.get(difficulty, DIFFICULTY_PROFILES["Realistic"])


# ─── Formatters ─────────────────────────────────────────────────

def format_relations(relations: list[DiplomaticRelation]) -> str:
    if not relations:
        return "None."
    parts = []
    for r in relations:
        treaties = f" [{', '.join(r.treaties)}]" if r.treaties else ""
        parts.append(f"{r.nation_a}<->{r.nation_b}: {r.type.value.upper()}{treaties}")
    return "; ".join(parts)


def format_events(events: list[GameEvent]) -> str:
    if not events:
        return "None."
    return "; ".join(f"[{e.year}] {e.description}" for e in events)


def format_history(history: list[LogEntry]) -> str:
    if not history:
        return "None."
    return "\n".join(
        f"[{entry.type.value.upper()}] {entry.text}"
        for entry in history[-PROMPT_HISTORY_LINES:]
    )


def format_territory(province_summary: list[dict]) -> str:
    """Group owned provinces by owner: ``owner: a, b; other: c``."""
    grouped: dict[str, list[str]] = {}
    for p in province_summary:
        owner = p.get("ownerId")
        if owner is None:
            continue
        grouped.setdefault(owner, []).append(p.get("name", ""))
    if not grouped:
        return "None."
    return "; ".join(f"{owner}: {', '.join(names)}" for owner, names in grouped.items())


def time_instruction(allow_time: bool) -> str:
    if allow_time:
        return 'When time passes, include a "time" update with the number of years elapsed.'
    return 'Do not emit "time" updates; the calendar is advanced by the engine.'


# ─── Prompt ─────────────────────────────────────────────────────

def build_game_master_prompt(context: TurnContext, allow_time: bool = False) -> str:
    """Assemble the adjudication prompt for one command."""
    story = context.story_so_far.strip() or "None yet."
    time_schema = (
        '\n    { "type": "time", "amount": 1 },' if allow_time else ""
    )

    return f"""You are the GAME MASTER of "Open Historia", a grand strategy simulation spanning all of history. Adjudicate player actions with vivid prose. The world is alive: nations pursue their own agendas independently.

SCENARIO: {context.scenario}
ERA: {era_context(context.year)}
YEAR: {context.year} | PLAYER: {context.player_name} | {difficulty_profile(context.difficulty)}

STORY SO FAR: {story}
RELATIONS: {format_relations(context.relations)}
TERRITORY: {format_territory(context.province_summary)}
EVENTS: {format_events(context.events)}
RECENT HISTORY:
{format_history(context.history)}

PLAYER COMMAND: "{context.command}"

RULES:
- Military: assess balance, terrain, logistics, alliances. Wars take time. Other nations react.
- Diplomacy: roleplay as the target nation's leader with their own interests. Treaties need mutual benefit.
- Political: coups need groundwork, sanctions take time, espionage can fail.
- Economy: has inertia. Infrastructure takes years. Geography constrains.
- Time advances: describe GLOBAL events, not just the player's nation.
- Validate actions: reject impossible ones, narrate failures for implausible ones, reward well-planned ones proportionally.
- {time_instruction(allow_time)}

RELATION TYPES: {RELATION_TYPES}.

OUTPUT: Return EXACTLY one raw JSON object. No markdown fences.
{{
  "message": "1-3 sentence narrative. Punchy, vivid. Outcome and consequences only.",
  "updates": [
    {{ "type": "owner", "provinceName": "Name", "newOwnerId": "player_or_ai_id" }},{time_schema}
    {{ "type": "event", "description": "Concise event", "eventType": "war|diplomacy|discovery|flavor|economy|crisis", "year": {context.year} }},
    {{ "type": "relation", "nationA": "Name", "nationB": "Name", "relationType": "neutral|friendly|allied|hostile|war|vassal", "reason": "Brief reason" }}
  ],
  "storySoFar": "Optional 2-4 sentence running summary of the campaign so far."
}}
Only include updates that actually occur. Empty updates = []. Always include an "event" if something noteworthy happened. Raw JSON only."""
