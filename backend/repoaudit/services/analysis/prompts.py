SYSTEM_ROLE = """You are a Senior SDET (Software Development Engineer in Test), a senior test engineer.
Analyze the code for 'Testability' and 'Automation Maturity'.
Return ONLY JSON format. No markdown, no conversational text."""

TRUNCATION_MARKER = "\n... [Content truncated for analysis]"


def truncate_content(content: str, limit: int) -> str:
    if len(content) > limit:
        return content[:limit] + TRUNCATION_MARKER
    return content


def build_unit_prompt(file_name: str, code_content: str) -> str:
    return f"""Analyze this code file ({file_name}):
{code_content}

Output structure:
{{
  "file_name": "{file_name}",
  "automation_score": <integer 0-10>,
  "has_tests": <boolean>,
  "test_type": <"unit" | "integration" | "e2e" | "none">,
  "observations": ["<string>", "<string>"],
  "improvement_suggestions": ["<string>", "<string>"]
}}

Scoring Criteria:
- 10: Perfect coverage, mockable interfaces, CI-ready.
- 5: Some logic, but hard to test (tight coupling), no tests present.
- 0: Untestable spaghetti code, hardcoded secrets/paths."""
