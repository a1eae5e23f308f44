import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_STORY_PATH = REPO_ROOT / "story" / "story.json"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from taleroute.story_schema import normalize_scenes


def load_story(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def build_graph(story: dict) -> dict:
    scenes, _ = normalize_scenes(story.get("scenes"))
    graph = {scene_id: [] for scene_id in scenes}
    for scene_id, scene in scenes.items():
        for option in scene.get("options", []) or []:
            for route in option.get("next", []) or []:
                target = route.get("to") if isinstance(route, dict) else None
                if isinstance(target, str) and target in scenes:
                    graph[scene_id].append(target)
    return graph


def traverse_from(start_scene: str, graph: dict) -> set:
    if start_scene not in graph:
        return set()
    visited = set()
    stack = [start_scene]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        stack.extend(graph.get(current, []))
    return visited


def main() -> None:
    story_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_STORY_PATH
    story = load_story(story_path)
    graph = build_graph(story)
    reached = traverse_from(story.get("startSceneId"), graph)

    unreachable = sorted(set(graph.keys()) - reached)

    print(f"Story file: {story_path}")
    print(f"Total scenes: {len(graph)}")
    print(f"Reachable scenes: {len(reached)}")
    if unreachable:
        print("Unreachable scenes:")
        for scene_id in unreachable:
            print(f"  - {scene_id}")
    else:
        print("All scenes reachable from the start scene.")


if __name__ == "__main__":
    main()
