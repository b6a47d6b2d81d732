"""
Agency Engine v1.0: ARC Catalog
Stock anomalies, realities and careers a new agent is built from.
Edit the tables below to retune the defaults; agents already on file
keep the ARC they were created with.
"""

from errors import invalid_input
from models import (
    Anomaly, AnomalyAbility, AbilityTrigger, AbilityRoll, Effect, ConditionalEffect,
    ChaosEffect, Reality, DegradationTrack, Career, Relationship,
    AnomalyType, RealityType, CareerType, QUALITIES, is_valid_value,
)


def _ability(anomaly: str, n: int, name: str, kind: str, quality: str,
             success: str, failure: str, extras: tuple = ()) -> AnomalyAbility:
    return AnomalyAbility(
        id=f"{anomaly.lower()}-{n}",
        name=name,
        description=success,
        trigger=AbilityTrigger(kind=kind),
        roll=AbilityRoll(quality=quality, dice_count=6, dice_type=4),
        success_effect=Effect(description=success, duration="scene", target="single"),
        failure_effect=Effect(description=failure, duration="instant", target="self"),
        additional_effects=[
            ConditionalEffect(condition=cond, effect=Effect(description=text, duration="scene"))
            for cond, text in extras
        ],
    )


# ═════════════════════════════════════════════════════
# ANOMALIES
# ═════════════════════════════════════════════════════

ABILITY_TABLE = {
    AnomalyType.WHISPER.value: [
        ("Overheard", "action", "Presence",
         "You hear what the target said when they thought no one was listening.",
         "The whisper carries your own secret to the wrong ears.",
         (("extra 3", "You also learn who they said it to."),)),
        ("Last Word", "response", "Empathy",
         "Your reply lands exactly as intended and is remembered.",
         "Your words are repeated back, twisted.",
         (("≥ 4 threes", "Everyone present believes they agreed all along."),)),
        ("Echo Chamber", "reactive", "Initiative",
         "A rumour you plant spreads through the scene.",
         "The rumour mutates and names you.",
         (("every third 3", "The rumour reaches the Anomaly."),)),
    ],
    AnomalyType.CATALOG.value: [
        ("Inventory", "action", "Focus",
         "You know the exact contents of one room.",
         "You catalog the wrong room, confidently.",
         (("extra 3", "One item is out of place, and you know why."),)),
        ("Cross-Reference", "response", "Profession",
         "Two facts you hold connect into a third.",
         "The index collapses; you forget a clue's source.",
         (("≥ 2 threes", "Recover one forgotten detail."),)),
        ("Misfile", "passive", "Subtlety",
         "A record that would expose you is quietly moved.",
         "The misfiled record is found, with your initials.",
         ()),
    ],
    AnomalyType.SIPHON.value: [
        ("Draw Off", "action", "Vitality",
         "You take a feeling out of the target and hold it.",
         "The feeling spills into you instead.",
         (("extra 3", "You may pass the feeling to another."),)),
        ("Pressure Valve", "response", "Grit",
         "A tense scene calms as you absorb the heat.",
         "You absorb too much and snap.",
         (("≥ 4 threes", "The calm lasts until the next scene."),)),
        ("Backflow", "reactive", "Empathy",
         "What was taken returns where it is needed.",
         "What was taken returns where it hurts.",
         ()),
    ],
    AnomalyType.TIMEPIECE.value: [
        ("Rewind", "action", "Focus",
         "The last few seconds happen again, your way.",
         "The seconds repeat, exactly as before, twice.",
         (("every third 3", "Nobody else notices the repeat."),)),
        ("Stopwatch", "response", "Initiative",
         "You act before anyone else can.",
         "You act a beat too late.",
         (("extra 3", "Take a second action."),)),
        ("Deadline", "passive", "Grit",
         "An appointment the target cannot miss appears in their day.",
         "The deadline is yours.",
         ()),
    ],
    AnomalyType.GROWTH.value: [
        ("Overgrowth", "action", "Vitality",
         "Something living grows to block a path.",
         "It grows where you stand.",
         (("≥ 2 threes", "The growth hides something inside it."),)),
        ("Graft", "response", "Profession",
         "An injury closes over with new tissue.",
         "The graft takes, but not as you.",
         (("extra 3", "Heal a second person."),)),
        ("Season", "reactive", "Empathy",
         "The mood of a place ripens toward calm.",
         "It ripens toward rot.",
         ()),
    ],
    AnomalyType.GUN.value: [
        ("Quickdraw", "action", "Initiative",
         "You hit exactly what you aimed at.",
         "You hit something else that mattered.",
         (("extra 3", "The shot also disarms."),)),
        ("Suppressing Fire", "response", "Grit",
         "Nobody moves until you say so.",
         "Everybody moves at once.",
         (("≥ 4 threes", "The area stays clear for the scene."),)),
        ("Ricochet", "reactive", "Focus",
         "A miss becomes a hit on something better.",
         "The ricochet finds you.",
         (("≥ 6 threes", "The ricochet hits the Anomaly itself."),)),
    ],
    AnomalyType.DREAM.value: [
        ("Lucid", "action", "Focus",
         "You walk through the target's last dream.",
         "You wake somewhere you did not fall asleep.",
         (("extra 3", "You keep an object from the dream."),)),
        ("Daydream", "response", "Subtlety",
         "Everyone present loses a minute of attention.",
         "You lose the minute instead.",
         ()),
        ("Night Terror", "passive", "Presence",
         "The target's fears become briefly visible.",
         "Your own fears take shape.",
         (("≥ 4 threes", "The fear leads you to its source."),)),
    ],
    AnomalyType.MANIFOLD.value: [
        ("Fold", "action", "Subtlety",
         "Two doors in the scene become the same door.",
         "Every door opens into the same wrong room.",
         (("every third 3", "The fold persists after you leave."),)),
        ("Parallel", "response", "Deception",
         "Another version of you handled it already.",
         "Another version of you made it worse.",
         (("extra 3", "Borrow that version's knowledge."),)),
        ("Crease", "reactive", "Focus",
         "A distance shortens to a step.",
         "A step lengthens to a distance.",
         ()),
    ],
    AnomalyType.ABSENCE.value: [
        ("Vanish", "action", "Subtlety",
         "Nobody notices you for the rest of the scene.",
         "Nobody notices you, including your allies.",
         (("extra 3", "Bring one other person with you."),)),
        ("Blank Spot", "response", "Deception",
         "A witness forgets one specific detail.",
         "The witness forgets everything except you.",
         (("≥ 2 threes", "The detail is forgotten by everyone present."),)),
        ("Empty Chair", "passive", "Empathy",
         "A missing person's absence points to where they went.",
         "The absence spreads to someone nearby.",
         ()),
    ],
}


def default_abilities(anomaly_type: str) -> list:
    rows = ABILITY_TABLE.get(anomaly_type)
    if rows is None:
        raise invalid_input(f"unknown anomaly type: {anomaly_type}", anomaly=anomaly_type)
    return [_ability(anomaly_type, i + 1, *row) for i, row in enumerate(rows)]


def default_chaos_effects(anomaly_type: str) -> list:
    key = anomaly_type.lower()
    return [
        ChaosEffect(id=f"{key}-bleed", name="Bleed", cost=1,
                    description="The anomaly leaks into the nearest bystander.",
                    effect="One NPC present becomes anomaly-affected."),
        ChaosEffect(id=f"{key}-echo", name="Echo", cost=2,
                    description="The last ability used repeats, out of your control.",
                    effect="Repeat the last ability's failure effect."),
        ChaosEffect(id=f"{key}-surge", name="Surge", cost=4,
                    description="The anomaly asserts itself across the location.",
                    effect="Add 1 overload to the current location."),
    ]


def default_anomaly(anomaly_type: str) -> Anomaly:
    if not is_valid_value(AnomalyType, anomaly_type):
        raise invalid_input(f"unknown anomaly type: {anomaly_type}", anomaly=anomaly_type)
    return Anomaly(
        type=anomaly_type,
        name=anomaly_type,
        abilities=default_abilities(anomaly_type),
        chaos_effects=default_chaos_effects(anomaly_type),
    )


# ═════════════════════════════════════════════════════
# REALITIES
# ═════════════════════════════════════════════════════

REALITY_TABLE = {
    RealityType.CARETAKER.value: ("Someone you care for needs you right now.",
                                  "Acting on behalf of the person you care for."),
    RealityType.SCHEDULE_OVERLOAD.value: ("Two commitments collide.",
                                          "Cancelling something you promised."),
    RealityType.HUNTED.value: ("Whatever follows you gets closer.",
                               "Leading the hunter away from others."),
    RealityType.STAR.value: ("A fan, a camera, an audience.",
                             "Performing in front of witnesses."),
    RealityType.STRUGGLING.value: ("A bill, a rent notice, an empty fridge.",
                                   "Taking the paid option."),
    RealityType.NEWBORN.value: ("Something ordinary is entirely new to you.",
                                "Asking for help."),
    RealityType.ROMANTIC.value: ("Your person calls at the worst moment.",
                                 "Choosing them over the mission."),
    RealityType.PILLAR.value: ("Your community needs its pillar.",
                               "Showing up for the community."),
    RealityType.OUTSIDER.value: ("You are reminded you do not belong.",
                                 "Refusing to fit in."),
}


def default_reality(reality_type: str) -> Reality:
    row = REALITY_TABLE.get(reality_type)
    if row is None:
        raise invalid_input(f"unknown reality type: {reality_type}", reality=reality_type)
    trigger, relief = row
    return Reality(
        type=reality_type,
        name=reality_type,
        trigger=trigger,
        overload_relief=relief,
        degradation=DegradationTrack(total=4, filled=0),
    )


# ═════════════════════════════════════════════════════
# CAREERS
# ═════════════════════════════════════════════════════

CAREER_QA = {
    CareerType.PR.value: {"Presence": 3, "Deception": 2, "Empathy": 2, "Focus": 1, "Subtlety": 1},
    CareerType.RND.value: {"Focus": 3, "Profession": 2, "Subtlety": 2, "Initiative": 1, "Grit": 1},
    CareerType.BARISTA.value: {"Empathy": 3, "Presence": 2, "Vitality": 2, "Initiative": 1, "Grit": 1},
    CareerType.CEO.value: {"Presence": 3, "Initiative": 2, "Deception": 2, "Focus": 1, "Profession": 1},
    CareerType.INTERN.value: {"Initiative": 2, "Vitality": 2, "Grit": 2, "Subtlety": 2, "Empathy": 1},
    CareerType.GRAVEDIGGER.value: {"Vitality": 3, "Grit": 3, "Subtlety": 1, "Focus": 1, "Profession": 1},
    CareerType.RECEPTION.value: {"Empathy": 2, "Presence": 2, "Focus": 2, "Subtlety": 2, "Deception": 1},
    CareerType.HOTLINE.value: {"Empathy": 3, "Focus": 2, "Grit": 2, "Deception": 1, "Profession": 1},
    CareerType.CLOWN.value: {"Deception": 3, "Presence": 2, "Initiative": 2, "Vitality": 1, "Empathy": 1},
}


def career_qa(career_type: str) -> dict:
    alloc = CAREER_QA.get(career_type)
    if alloc is None:
        raise invalid_input(f"unknown career type: {career_type}", career=career_type)
    return {q: alloc.get(q, 0) for q in QUALITIES}


def default_career(career_type: str) -> Career:
    return Career(type=career_type, name=career_type, qa=career_qa(career_type))


def default_relationships() -> list:
    return [
        Relationship(id="rel-1", name="Relationship 1", connection=6),
        Relationship(id="rel-2", name="Relationship 2", connection=3),
        Relationship(id="rel-3", name="Relationship 3", connection=3),
    ]
