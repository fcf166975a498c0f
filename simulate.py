import asyncio
import json

import httpx

# Configuration
URL = "http://localhost:8000/story-delta/plan"

STORY = """# Chapter 1

Alice returns from the old tower with a sealed map. The Shadow Couriers
are rumored to be watching the road.

# Chapter 2

Rowan fortifies the old tower and creates a new watch post.
"""

EXISTING_ALICE = """---
title: "Alice"
pageKey: "character/alice"
customField: 1
---

Alice is a veteran investigator.
"""


async def simulate_plan():
    payload = {
        "storyMarkdown": STORY,
        "targetFolder": "wiki",
        "existingPages": [{"path": "wiki/character-alice.md", "content": EXISTING_ALICE}],
        "updatePolicy": "structured_merge",
        "defaultTagsRaw": "wiki",
        "lorebookScopes": ["story/main"],
    }

    print(f"Posting plan request to {URL}...")
    try:
        async with httpx.AsyncClient(timeout=300) as client:
            response = await client.post(URL, json=payload)
    except httpx.HTTPError as e:
        print(f"Simulation failed: {e}")
        return

    if response.status_code != 200:
        print(f"[Server Error] {response.status_code}: {response.text}")
        return

    plan = response.json()
    for warning in plan["warnings"]:
        print(f"[warn] {warning}")
    for chunk in plan["chunks"]:
        print(f"[chunk {chunk['chunkIndex']}] operations={chunk['operationCount']}")
    for page in plan["pages"]:
        print(f"\n=== {page['action'].upper()} {page['path']} ===")
        print(page["diff"]["preview"])

    print("\n--- Changes ---")
    print(json.dumps(plan["changes"], indent=2))


if __name__ == "__main__":
    asyncio.run(simulate_plan())
