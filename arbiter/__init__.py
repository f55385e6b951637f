"""
Arbiter — Permission & Currency Decision Engine for Merit Communities
=====================================================================
Decides, for every vote, post, edit, delete or view action on a merit
community platform, whether the action is permitted and, when it moves
merit, which currency may pay for it and which wallet receives it.

Package layout::

    arbiter/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Reason codes + id helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Enums + ORM models
    ├── engine/
    │   ├── types.py       # Rules, contexts and factor results
    │   ├── defaults.py    # Default rule matrix + type overrides
    │   ├── context.py     # Collaborator protocols + ContextBuilder
    │   ├── role_hierarchy.py    # Factor 1: permission gate
    │   ├── currency.py          # Factors 2/3 + composer
    │   ├── merit_destination.py # Factor 4: wallet routing
    │   └── orchestrator.py      # DecisionOrchestrator
    └── services/
        ├── lookup_service.py      # DB-backed collaborators
        ├── permissions_service.py # Per-resource permission summaries
        └── seed.py                # Special community seeder
"""

__version__ = "0.1.0"
