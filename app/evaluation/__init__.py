"""Website Evaluation Pipeline.

Turns an evaluation request into one scored result per rubric criterion:
  1. Request Validator & Sanitizer
  2. Prompt Builder
  3. LLM Client (auth, generation parameters, timeout)
  4. Retry-with-backoff combinator
  5. Response Normalizer (JSON → fenced JSON → regex → default)
  6. Orchestrator (sequential criteria, summary statistics)

Input:  EvaluationRequest {websiteUrl, selectedSections, criteria}
Output: EvaluationRun (results + summary)
"""
