"""仓库模板：定义三类模板的必需文档、种子内容与可选目录。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from app.packages.idea_repo.core.timezone import isoformat, now


@dataclass(frozen=True)
class RepositoryTemplate:
    name: str
    description: str
    # 文件名 -> 种子内容生成函数（部分内容包含生成时间，需在创建时渲染）
    required_files: Dict[str, Callable[[], str]] = field(default_factory=dict)
    optional_folders: List[str] = field(default_factory=list)

    def render(self) -> Dict[str, str]:
        return {name: build() for name, build in self.required_files.items()}

    @property
    def required_names(self) -> List[str]:
        return list(self.required_files)


_IDEA_MD = """# Idea Title

## Overview
Brief description of your idea in 1-2 sentences.

## Description
Detailed explanation of your idea, what it does, and why it matters.

## Target Audience
Who would benefit from this idea?

## Key Features
- Feature 1
- Feature 2
- Feature 3

## Current Status
What stage is this idea in? (Concept, Planning, Development, etc.)

## Next Steps
What needs to happen to move this forward?
"""

_SCOPE_MD = """# Project Scope

## What's Included
Define what this project will include and deliver.

### Core Features
- List the essential features
- That must be included

### Secondary Features
- Optional features
- That would be nice to have

## What's Excluded
Clearly define what is NOT part of this project.

### Out of Scope
- Features that won't be included
- To keep the project focused

## Success Criteria
How will you know when this project is successful?

## Timeline
Rough estimate of project duration and major milestones.
"""

_PROBLEM_MD = """# Problem Statement

## The Problem
Clearly describe the problem this idea solves.

### Who Has This Problem?
- Target user group 1
- Target user group 2

### Why Is This Important?
Explain the impact and significance of solving this problem.

## Current Solutions
What existing solutions are available?

### Their Limitations
- Limitation 1
- Limitation 2

## Our Approach
How does your idea solve this problem differently or better?

## Expected Impact
What change will this solution create?
"""

_SEARCH_MD = """# Search Keywords

*This file is automatically updated based on user interactions and content analysis.*

## Primary Keywords
- keyword1
- keyword2
- keyword3

## Secondary Keywords
- related term 1
- related term 2

## Tags
- tag1
- tag2

## Related Concepts
- concept1
- concept2

---
*Last updated: {updated}*
"""

_METHODOLOGY_MD = """# Research Methodology

## Research Approach
Describe your overall research strategy.

## Data Collection
How will you gather information?

### Primary Sources
- Source type 1
- Source type 2

### Secondary Sources
- Literature review
- Existing datasets

## Analysis Methods
How will you analyze the collected data?

## Timeline
Research phases and milestones.
"""

_REFERENCES_MD = """# References

## Academic Papers
1. Author, A. (Year). Title of paper. Journal Name.

## Books
1. Author, A. (Year). Book Title. Publisher.

## Online Resources
1. Website Name. (Date). Article Title. URL

## Related Projects
1. Project Name - Brief description

## Tools and Datasets
1. Tool/Dataset Name - Description and source
"""

_ARCHITECTURE_MD = """# Technical Architecture

## System Overview
High-level description of the system architecture.

## Components
### Frontend
- Technology stack
- Key components

### Backend
- Technology stack
- API design

### Database
- Database choice
- Schema design

### Infrastructure
- Hosting requirements
- Scalability considerations

## Data Flow
Describe how data moves through the system.

## Security Considerations
Key security requirements and implementations.
"""

_REQUIREMENTS_MD = """# Technical Requirements

## Functional Requirements
What the system must do.

### Core Features
1. Requirement 1
2. Requirement 2

### User Stories
- As a [user type], I want [goal] so that [benefit]

## Non-Functional Requirements
How the system should perform.

### Performance
- Response time requirements
- Throughput expectations

### Scalability
- Expected user load
- Growth projections

### Security
- Authentication requirements
- Data protection needs

## Technical Constraints
- Technology limitations
- Resource constraints
- Compatibility requirements
"""


def _static(text: str) -> Callable[[], str]:
    return lambda: text


def _search_seed() -> str:
    return _SEARCH_MD.format(updated=isoformat(now()))


_CORE_FILES: Dict[str, Callable[[], str]] = {
    "idea.md": _static(_IDEA_MD),
    "scope.md": _static(_SCOPE_MD),
    "problem.md": _static(_PROBLEM_MD),
    "search.md": _search_seed,
}

TEMPLATES: Dict[str, RepositoryTemplate] = {
    "basic": RepositoryTemplate(
        name="Basic Idea",
        description="Simple idea repository structure",
        required_files=dict(_CORE_FILES),
        optional_folders=["docs", "media"],
    ),
    "research": RepositoryTemplate(
        name="Research Project",
        description="Academic or research-focused structure",
        required_files={
            **_CORE_FILES,
            "methodology.md": _static(_METHODOLOGY_MD),
            "references.md": _static(_REFERENCES_MD),
        },
        optional_folders=["docs", "media", "data", "analysis"],
    ),
    "technical": RepositoryTemplate(
        name="Technical Project",
        description="Software or technical implementation",
        required_files={
            **_CORE_FILES,
            "architecture.md": _static(_ARCHITECTURE_MD),
            "requirements.md": _static(_REQUIREMENTS_MD),
        },
        optional_folders=["docs", "media", "data"],
    ),
}
