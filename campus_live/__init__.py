# Package initializer for the institute live engine.

"""
The ``campus_live`` package contains the time-aware core of the institute
administration suite.

Modules:

- ``config``: application settings loaded from environment variables.
- ``models``: Pydantic value objects for windows, timetables and results.
- ``classifier``: UPCOMING / LIVE / PAST classification of one window.
- ``occupancy``: room occupancy, availability checks and the timetable grid.
- ``clock``: injectable ticking clocks driving re-classification.
- ``overlay``: dirty-tracking edits over a server snapshot.
- ``validation`` and ``commit``: diff validation and single-batch commit.
- ``attendance`` and ``grading``: the two bulk-edit sheets built on overlays.
- ``views``: mount-scoped live views with stale-response protection.
- ``api_client``: helpers for the institute backend API.
- ``main``: the FastAPI room status service.

"""

__version__ = "0.1.0"
