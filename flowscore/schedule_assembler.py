"""ScheduleAssembler and ScoreConverter: the end-to-end score → schedule pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

from flowscore.conflict_resolver import PrecedenceResolver
from flowscore.errors import ConflictError, ConversionError, MappingError, ScheduleError
from flowscore.role_aggregator import ConversionParameters, RoleAggregator, RoleTimelines
from flowscore.schedule_models import Command, Schedule
from flowscore.score_models import Score
from flowscore.score_parser import ScoreParser
from flowscore.timeline_merger import TIME_TOLERANCE_MS, TimelineMerger

logger = logging.getLogger(__name__)


class ScheduleAssembler:
    """Package resolved per-role commands and the shared time axis into a Schedule."""

    def assemble(
        self, time: Sequence[float], role_commands: Mapping[str, list[Command]]
    ) -> Schedule:
        """
        Raises:
            ValueError: If a role's command list does not match the time axis.
        """
        for role, commands in role_commands.items():
            if len(commands) != len(time):
                raise ValueError(
                    f"Role '{role}' has {len(commands)} command(s) for {len(time)} tick(s)"
                )
        return Schedule(time=list(time), instructions=dict(role_commands))


class ScoreConverter:
    """
    Compile a score into a Schedule.

    Pipeline
    --------
    1. ScoreParser: MusicXML text → Score
    2. RoleAggregator: group mapped parts by role, one timeline per port
    3. TimelineMerger: one common time axis, one Command per role per tick
    4. ScheduleAssembler: the final Schedule

    Every role is attempted even after another one fails; failures are
    collected and raised together as a ScheduleError, so the caller either
    gets a complete schedule or the full list of problems.
    """

    def __init__(
        self,
        parameters: ConversionParameters,
        parser: ScoreParser | None = None,
        tolerance: float = TIME_TOLERANCE_MS,
    ) -> None:
        self.parameters = parameters
        self.parser = parser if parser is not None else ScoreParser()
        self.aggregator = RoleAggregator(parameters)
        self.merger = TimelineMerger(PrecedenceResolver(parameters.dynamics), tolerance)
        self.assembler = ScheduleAssembler()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert_score(self, score: Score) -> Schedule:
        """
        Convert an already-parsed Score.

        Raises:
            MappingError: If no part is mapped to any role.
            ScheduleError: If any role fails mapping validation or conflict resolution.
        """
        groups = self.aggregator.group()
        if not groups:
            raise MappingError("No parts are mapped to a role")

        errors: list[ConversionError] = []
        roles: list[RoleTimelines] = []
        for role, members in groups.items():
            try:
                roles.append(self.aggregator.build_role(score, role, members))
            except MappingError as exc:
                errors.append(exc)

        timeline = self.merger.common_timeline(roles)
        logger.debug("Common timeline: %d tick(s)", len(timeline))

        instructions: dict[str, list[Command]] = {}
        for role_timelines in roles:
            try:
                instructions[role_timelines.role] = self.merger.merge(role_timelines, timeline)
            except ConflictError as exc:
                errors.append(exc)

        if errors:
            raise ScheduleError(errors)

        schedule = self.assembler.assemble(timeline, instructions)
        logger.info(
            "Converted %d role(s) over %d tick(s)", len(schedule.instructions), len(schedule.time)
        )
        return schedule

    def convert(self, text: str) -> Schedule:
        """Parse MusicXML text and convert it."""
        return self.convert_score(self.parser.parse(text))

    def convert_file(self, path: str | Path) -> Schedule:
        """Read a MusicXML file and convert it."""
        return self.convert_score(self.parser.parse_file(path))
