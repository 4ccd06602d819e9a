"""System prompt assembly for chat and agent modes."""

import sys
from typing import Optional, Sequence

from .types import ContextItem


CONTEXT_HEADER = "TERMINAL CONTEXT PROVIDED BY USER:\n"
CONTEXT_SEPARATOR = "\n\n---\n\n"

# Few-shot examples are only worth their tokens for uncertain queries
EXAMPLES_MIN_COMPLEXITY = 40

CHAIN_OF_THOUGHT = """

Think step by step:
1. What information do I need?
2. What tools should I use?
3. What's the best approach?"""

COMPLEXITY_INDICATORS = [
    "why", "how", "explain", "debug", "fix", "optimize",
    "best way", "should i", "difference between",
]

FEW_SHOT_EXAMPLES = """
EXAMPLE 1: Debugging Command Errors
User: "Why did 'npm install' fail?"
Assistant: The error shows "EACCES: permission denied". This typically means:
1. You're trying to install globally without sudo
2. npm's cache has incorrect permissions

Try: `npm install --prefix ~/.npm-global`
Or fix permissions: `sudo chown -R $(whoami) ~/.npm`

EXAMPLE 2: System Analysis
User: "System is slow, what's using resources?"
Assistant: I'll check multiple things:
```bash
top -l 1 | head -n 10
df -h
```

EXAMPLE 3: File Operations
User: "Find all Python files modified today"
Assistant:
```bash
find . -name "*.py" -mtime 0 -type f
```
"""

SKILL_GUIDANCE = {
    "beginner": """USER SKILL LEVEL: Beginner
- Explain every command and flag
- Define technical terms
- Provide step-by-step instructions
- Suggest safer alternatives""",
    "intermediate": """USER SKILL LEVEL: Intermediate
- Balance explanation with brevity
- Explain non-obvious flags
- Provide learning resources when relevant""",
    "expert": """USER SKILL LEVEL: Expert
- Be concise, skip basic explanations
- Show advanced options
- Assume knowledge of Unix fundamentals
- Focus on efficiency""",
}

SHELL_HINTS = {
    "bash": """SHELL: bash
- Stick to POSIX-compatible commands when possible
- Mention bash-specific features when useful""",
    "zsh": """SHELL: zsh
- Use zsh-specific features when helpful (globbing, etc.)
- Mention oh-my-zsh plugins when relevant""",
    "fish": """SHELL: fish
- Use fish-friendly syntax
- Mention fish-specific commands""",
}

PLATFORM_HINTS = {
    "macos": """PLATFORM: macOS
- Package manager: brew (Homebrew)
- Services: launchctl for daemons
- Use open, pbcopy, pbpaste where useful""",
    "linux": """PLATFORM: Linux
- Package managers: apt (Debian/Ubuntu), dnf (Fedora/RHEL), pacman (Arch)
- Services: systemctl for systemd-based distros
- Check distro with: cat /etc/os-release""",
    "windows": """PLATFORM: Windows
- Use PowerShell syntax when appropriate
- Package manager: winget, choco, scoop
- User may be in WSL, Git Bash, or native PowerShell""",
    "unknown": """PLATFORM: Unknown
- Prefer POSIX-compatible commands for portability
- Ask about OS if platform-specific commands are needed""",
}

AGENT_PREAMBLE = """You are an expert AI assistant embedded in a terminal emulator with tool execution capabilities.

CORE PRINCIPLES:
1. **Observe First**: Use tools to gather information before suggesting solutions
2. **Explain Simply**: Match complexity to user's apparent skill level
3. **Verify Assumptions**: Don't assume current directory or environment
4. **Safety First**: Warn about destructive operations, suggest backups
5. **Progressive Disclosure**: Start simple, add details if asked"""

AGENT_FORMAT = """RESPONSE FORMAT:
- Use tools proactively without asking permission
- Show command examples in ```bash code blocks
- Structure complex answers with headings
- Highlight key information with **bold**"""

CHAT_PREAMBLE = """You are an expert AI assistant embedded in a terminal emulator.

CRITICAL: You do NOT have tool execution capabilities. Do NOT claim you can run commands.

CORE PRINCIPLES:
1. **Suggest, Don't Execute**: Provide commands user can copy and run
2. **Explain Clearly**: Help user understand what commands do
3. **Teach**: Explain concepts, not just solutions
4. **Safety First**: Warn about destructive operations"""

CHAT_FORMAT = """RESPONSE FORMAT:
- Put all commands in ```bash code blocks
- Explain what each command does
- Provide alternatives when relevant
- Use **bold** for warnings"""


def detect_platform() -> str:
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform.startswith("win"):
        return "windows"
    return "unknown"


def build_system_prompt(
    mode: str,
    context_summary: Optional[str] = None,
    complexity_score: Optional[int] = None,
    skill_level: Optional[str] = None,
    shell: Optional[str] = None,
    platform: Optional[str] = None,
) -> str:
    """
    Build the system prompt for a request.

    Args:
        mode: "agent" (tools available) or "chat"
        context_summary: Short description of attached context
        complexity_score: Routing score; examples are included at 40+ or when unknown
        skill_level: beginner, intermediate or expert
        shell: bash, zsh or fish
        platform: macos, linux, windows (detected when omitted)
    """
    sections = [AGENT_PREAMBLE if mode == "agent" else CHAT_PREAMBLE]
    sections.append(SKILL_GUIDANCE.get(skill_level, SKILL_GUIDANCE["intermediate"]))
    sections.append(SHELL_HINTS.get(shell, SHELL_HINTS["bash"]))
    sections.append(PLATFORM_HINTS.get(platform or detect_platform(), PLATFORM_HINTS["unknown"]))

    if context_summary:
        sections.append(f"RECENT CONTEXT SUMMARY:\n{context_summary}")

    if complexity_score is None or complexity_score >= EXAMPLES_MIN_COMPLEXITY:
        sections.append(FEW_SHOT_EXAMPLES.strip())

    sections.append(AGENT_FORMAT if mode == "agent" else CHAT_FORMAT)
    return "\n\n".join(sections)


def append_context(system_prompt: str, formatted_context: Sequence[str]) -> str:
    """Attach formatted context blocks to the system prompt."""
    if not formatted_context:
        return system_prompt
    return f"{system_prompt}\n\n{CONTEXT_HEADER}{CONTEXT_SEPARATOR.join(formatted_context)}"


def summarize_context(items: Sequence[ContextItem]) -> str:
    """One-paragraph description of the attached context."""
    if not items:
        return ""

    type_counts = {}
    has_errors = False
    last_command = ""
    for item in items:
        type_counts[item.type] = type_counts.get(item.type, 0) + 1
        if item.has_error:
            has_errors = True
        if item.type == "command" or item.command:
            last_command = item.command or item.text

    lines = [f"{len(items)} context items available"]
    lines.append("Types: " + ", ".join(f"{count} {t}" for t, count in type_counts.items()))
    if has_errors:
        lines.append("Context includes command failures")
    if last_command:
        lines.append(f"Most recent command: {last_command[:60]}")
    return "\n".join(lines)


def add_chain_of_thought(prompt: str, complexity_level: Optional[int] = None) -> str:
    """
    Append step-by-step guidance to non-trivial prompts.

    With a complexity level (1 simple, 2 moderate, 3 complex) the level
    decides; without one, keyword indicators do.
    """
    if complexity_level is not None:
        if complexity_level < 2:
            return prompt
        return prompt + CHAIN_OF_THOUGHT

    lower = prompt.lower()
    if any(indicator in lower for indicator in COMPLEXITY_INDICATORS):
        return prompt + CHAIN_OF_THOUGHT
    return prompt
