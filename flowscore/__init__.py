"""flowscore: compile dynamics-annotated MusicXML into FlowIO actuation schedules."""

__version__ = "0.1.0"
