"""
Ability package for the Ability Layer.

Answers "may this actor perform this action on this subject" and builds the
filters that fetch every record an actor may act on. It provides:

- app.ability: Ability aggregate with grant/revoke and can/cannot/authorize.
- app.rules: Rule model, alias registry, condition matching and resolution.
- app.query: Filter AST and the compiler turning rules into filters.
- app.persistence: Persistence collaborator interface and in-memory store.
- app.resources: Loading and authorizing the resource behind a request.
- app.middleware: FastAPI error handlers and authorization dependencies.

Guidelines:
- Abilities are built once per actor/request and treated as read-only after.
- Later rules win; no rule means no access.
- The core never executes queries; persistence adapters do.
"""
