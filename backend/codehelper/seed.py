"""Starter task catalogue and assessment question bank.

Seeding is idempotent: rows are keyed by stable ids and existing rows are
reactivated rather than duplicated.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from .db.models import AssessmentQuestionModel, TaskModel

logger = logging.getLogger(__name__)

SEED_TASKS: List[Dict[str, Any]] = [
    {
        "id": "python-reverse-string",
        "title": "Reverse a String",
        "description": "Write a function that takes a string and returns it reversed.",
        "language": "python",
        "difficulty": "beginner",
        "category": "algorithms",
        "hints": ["Strings support slicing", "A negative step walks backwards"],
        "starter_code": "def reverse_string(s: str) -> str:\n    # Your code here\n    return \"\"\n",
    },
    {
        "id": "python-find-max",
        "title": "Find Maximum in List",
        "description": "Return the largest value in a non-empty list of integers without using max().",
        "language": "python",
        "difficulty": "beginner",
        "category": "algorithms",
        "hints": ["Track the best value seen so far", "Compare each element once"],
        "starter_code": "def find_max(values: list[int]) -> int:\n    # Your code here\n    return 0\n",
    },
    {
        "id": "python-word-count",
        "title": "Word Frequency",
        "description": "Count how often each word appears in a sentence, ignoring case.",
        "language": "python",
        "difficulty": "intermediate",
        "category": "data_structures",
        "hints": ["Normalise case first", "A dictionary maps word to count"],
        "starter_code": "def word_count(text: str) -> dict[str, int]:\n    # Your code here\n    return {}\n",
    },
    {
        "id": "javascript-two-sum",
        "title": "Two Sum",
        "description": "Given an array of integers and a target, return the indices of two numbers that add up to the target.",
        "language": "javascript",
        "difficulty": "intermediate",
        "category": "algorithms",
        "hints": ["Store seen numbers in a Map", "Look up the complement of each number"],
        "starter_code": "function twoSum(nums, target) {\n  // Your code here\n  return [];\n}\n",
    },
    {
        "id": "javascript-palindrome",
        "title": "Palindrome Check",
        "description": "Return true when a string reads the same forwards and backwards, ignoring non-letters.",
        "language": "javascript",
        "difficulty": "beginner",
        "category": "algorithms",
        "hints": ["Strip characters you want to ignore", "Compare with the reversed string"],
        "starter_code": "function isPalindrome(text) {\n  // Your code here\n  return false;\n}\n",
    },
    {
        "id": "go-binary-search",
        "title": "Binary Search",
        "description": "Implement binary search to find a target value in a sorted slice.",
        "language": "go",
        "difficulty": "intermediate",
        "category": "algorithms",
        "hints": ["Use two pointers: left and right", "Compare the target with the middle element"],
        "starter_code": "func binarySearch(arr []int, target int) int {\n    // Your code here\n    return -1\n}\n",
    },
]

SEED_QUESTIONS: List[Dict[str, Any]] = [
    {
        "id": "general-big-o-lookup",
        "question": "What is the average time complexity of looking up a key in a hash map?",
        "type": "multiple_choice",
        "options": ["O(1)", "O(log n)", "O(n)", "O(n log n)"],
        "correct_answer": "O(1)",
        "language": "general",
        "difficulty": "beginner",
    },
    {
        "id": "general-stack-order",
        "question": "Which data structure returns elements in last-in, first-out order?",
        "type": "multiple_choice",
        "options": ["Queue", "Stack", "Heap", "Set"],
        "correct_answer": "Stack",
        "language": "general",
        "difficulty": "beginner",
    },
    {
        "id": "general-recursion-base",
        "question": "What stops a recursive function from calling itself forever?",
        "type": "conceptual",
        "options": [],
        "correct_answer": "base case",
        "language": "general",
        "difficulty": "beginner",
    },
    {
        "id": "python-list-append",
        "question": "What does `[1, 2] + [3]` evaluate to in Python?",
        "type": "code_snippet",
        "options": [],
        "correct_answer": "[1, 2, 3]",
        "language": "python",
        "difficulty": "beginner",
    },
    {
        "id": "python-none-identity",
        "question": "Which operator should be used to compare a value against None in Python?",
        "type": "multiple_choice",
        "options": ["==", "is", "=", "in"],
        "correct_answer": "is",
        "language": "python",
        "difficulty": "beginner",
    },
    {
        "id": "javascript-strict-equality",
        "question": "Which JavaScript operator compares without type coercion?",
        "type": "multiple_choice",
        "options": ["==", "===", "=", "!="],
        "correct_answer": "===",
        "language": "javascript",
        "difficulty": "beginner",
    },
]


def seed_catalog(session: Session) -> Dict[str, int]:
    created = {"tasks": 0, "questions": 0}
    for entry in SEED_TASKS:
        model = session.get(TaskModel, entry["id"])
        if model is None:
            session.add(TaskModel(**entry))
            created["tasks"] += 1
        elif not model.is_active:
            model.is_active = True
    for entry in SEED_QUESTIONS:
        if session.get(AssessmentQuestionModel, entry["id"]) is None:
            session.add(AssessmentQuestionModel(**entry))
            created["questions"] += 1
    session.flush()
    logger.info("Seeded %d tasks and %d assessment questions", created["tasks"], created["questions"])
    return created


__all__ = ["SEED_QUESTIONS", "SEED_TASKS", "seed_catalog"]
