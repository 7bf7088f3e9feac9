"""
Questboard — Lifecycle Core for a Scheduled Group-Quest Marketplace
====================================================================
Creators submit quest templates for review, approved templates spawn
dated instances, instances recruit participants who are grouped into
squads, and squads warm up before the event runs.  This package owns the
state machines behind that flow and the attention engine that tells an
operator what needs doing next.

Package layout::

    questboard/
    ├── config.py          # YAML → typed Python config (+ lifecycle tuning)
    ├── constants.py       # Notification copy, labels, settings vocabulary
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Quests, instances, squads, audit log
    ├── engine/
    │   ├── state_graph.py # Declarative legal-transition tables
    │   ├── results.py     # Success / Failure result types
    │   ├── clock.py       # UTC helpers, event start instants
    │   ├── warmup.py      # Squad health + readiness (pure)
    │   └── attention.py   # Attention flag inference (pure)
    ├── services/
    │   ├── audit.py           # Conditional status writes + audit rows
    │   ├── notifier.py        # Notification collaborator
    │   ├── quest_service.py   # Quest review + lifecycle actions
    │   ├── instance_service.py # Instance execution lifecycle
    │   ├── squad_service.py   # Squad warm-up + governance
    │   ├── bulk_service.py    # Batch instance transitions
    │   └── attention_service.py # Snapshot loading for the engine
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine, config, admin JWT guard
        └── routes/        # Admin lifecycle endpoints
"""

__version__ = "0.1.0"
