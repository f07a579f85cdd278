"""
Pipeline package for the landmark recognition and narration system.

Contains:
- `config`  : `.env`-backed provider settings
- `errors`  : Error taxonomy shared by every stage
- `state`   : `Phase` state machine and typed `LandmarkState`
- `tools`   : LangChain tools wrapping the Gemini calls
- `nodes`   : LangGraph node callables operating over `LandmarkState`
- `graph`   : StateGraph builder and compiled `pipeline`
- `session` : `LandmarkSession`, the orchestrator a front-end talks to
"""
