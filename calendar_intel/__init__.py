"""Calendar Intel: scheduling intelligence over a Nylas calendar and inbox.

Architecture Overview
=====================

Four cooperating components sit on top of a provider-agnostic LLM layer:

1. **LLM Router**: registers one client per configured backend (Ollama,
   Claude, OpenAI, Groq) and answers chat requests with the first provider
   of an ordered fallback chain that is available and succeeds.

2. **Pattern Learner**: derives acceptance, duration, timezone and
   productivity patterns from calendar history.  The statistics are pure
   functions of the event list; only the final recommendation text comes
   from the router.

3. **Focus Optimizer**: turns the learned history into recommended focus
   blocks, books accepted blocks as busy events and proposes (never applies)
   adaptive schedule changes.
   The conflict resolver and meeting scorer check a proposed slot against
   the same history: overlaps, missing buffers, focus blocks and overload.

4. **AI Scheduler**: a LangGraph state machine that gives the model a
   six-tool scheduling catalogue, resolves one round of tool calls and parses
   ranked meeting options out of the final answer.

Key Design Decisions
--------------------
- **Fallback, not retries**: providers never retry on their own; the router's
  chain is strictly sequential, so worst-case latency is the sum of the
  per-provider timeouts.
- **Calendar resilience**: the Nylas client retries timeouts, connection
  errors and 5xx responses with exponential backoff (3 attempts).
- **Nothing is persisted**: every analysis is recomputed from the calendar.
- **Dual Interface**: FastAPI server + argparse CLI.

Package Structure
-----------------
- ``calendar_intel/config.py``: environment configuration and the AI config snapshot
- ``calendar_intel/models.py``: calendar and email records
- ``calendar_intel/llm/``: chat schemas, provider clients and the router
- ``calendar_intel/analytics/``: pattern learner, focus optimizer, conflict resolver,
  meeting scorer, email analyzer
- ``calendar_intel/tools/``: LangChain scheduling tools
- ``calendar_intel/agent.py``: LangGraph AI scheduler
- ``calendar_intel/services/``: Nylas client and CloudWatch metrics
- ``calendar_intel/api/``: FastAPI routes, schemas and service wiring
- ``calendar_intel/server.py`` / ``calendar_intel/main.py``: server and CLI
"""
