"""
Rules package.

Defines the rule model and the resolution engine used by Ability. Rules are
scanned newest first and the first applicable one decides, so a later
declaration always overrides an earlier one regardless of how specific
either is.

Modules of interest:
- models: Rule, condition variants, operators and decisions.
- aliases: Action alias registry (read -> index/show, manage -> everything).
- conditions: Parsing of condition dicts and instance-mode matching.
- engine: Relevance checks and the resolution algorithm.
"""
