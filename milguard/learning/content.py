"""
Default curriculum + module creation helpers.
Modules are seeded once (when the store has none) and are read-mostly after that.
"""
from milguard.core.errors import ValidationError
from milguard.schemas import LearningModule, ModuleContent
from milguard.storage.base import Storage

DEFAULT_MODULES = [
    {
        "title": "AI Content Basics",
        "description": "Understanding AI-generated content and its implications",
        "order": 1,
        "content": {
            "sections": [
                {
                    "title": "What is AI-Generated Content?",
                    "type": "text",
                    "content": "Learn about different types of AI-generated content and how they're created.",
                },
                {
                    "title": "Common AI Tools",
                    "type": "interactive",
                    "content": "Explore popular AI tools and their capabilities.",
                },
            ]
        },
    },
    {
        "title": "Deepfake Detection",
        "description": "Learn to identify AI-generated faces and manipulated videos",
        "order": 2,
        "content": {
            "sections": [
                {
                    "title": "Spotting Facial Inconsistencies",
                    "type": "video",
                    "content": "Video tutorial on detecting deepfakes",
                },
                {
                    "title": "Interactive Quiz",
                    "type": "quiz",
                    "content": "Test your deepfake detection skills",
                    "questions": [
                        {
                            "question": "Which detail most often gives away a face-swap video?",
                            "options": [
                                "Flickering around the hairline and jaw",
                                "A high video resolution",
                                "Background music",
                            ],
                            "answerIndex": 0,
                        },
                    ],
                },
            ]
        },
    },
    {
        "title": "Source Verification",
        "description": "Learn to trace information to its original source and verify credibility",
        "order": 3,
        "content": {
            "sections": [
                {
                    "title": "The SIFT Method",
                    "type": "text",
                    "content": "Stop, Investigate, Find, Trace - a systematic approach to verification",
                },
            ]
        },
    },
    {
        "title": "Critical Thinking",
        "description": "Advanced techniques for evaluating claims and identifying bias",
        "order": 4,
        "content": {
            "sections": [
                {
                    "title": "Cognitive Biases",
                    "type": "interactive",
                    "content": "Understanding how biases affect information processing",
                },
            ]
        },
    },
]


def create_module(
    storage: Storage,
    title: str,
    description: str,
    content: dict,
    order: int,
    is_active: bool = True,
) -> LearningModule:
    if order < 1:
        raise ValidationError("Module order must start at 1")
    if not title.strip():
        raise ValidationError("Module title is required")
    return storage.create_learning_module(
        title=title.strip(),
        description=description,
        content=ModuleContent.model_validate(content),
        order=order,
        is_active=is_active,
    )


def seed_default_modules(storage: Storage) -> list[LearningModule]:
    """Insert DEFAULT_MODULES if the store has no modules at all. Safe to run repeatedly."""
    if storage.get_learning_modules(include_inactive=True):
        return []
    created = [create_module(storage, **entry) for entry in DEFAULT_MODULES]
    print(f"[LEARNING] seeded {len(created)} default modules", flush=True)
    return created
