"""Prompt templates for the story -> script workflow.

Placeholders use ``{name}``; JSON examples in the templates are never
mistaken for placeholders because their keys are quoted.
"""

CHARACTER_PROFILE = {
    "zh": """你是一名资深的小说改编编剧，负责从小说原文中提取角色档案。

已有角色库：{characters_lib_name}
已有角色简介：
{characters_introduction}

请阅读下面的小说原文，找出所有有台词或推动情节的角色。已在角色库中的角色不要重复输出，除非原文给出了新的别名。

小说原文：
{input}

只输出 JSON，格式如下：
{"characters": [{"name": "角色名", "aliases": ["别名"], "introduction": "一句话介绍", "gender": "male|female|unknown", "age_range": "年龄段", "role_level": "protagonist|supporting|minor", "appearance": "外貌描述"}]}
""",
    "en": """You are a senior screenwriter adapting a novel. Extract character profiles from the source text.

Existing character library: {characters_lib_name}
Existing character introductions:
{characters_introduction}

Read the novel text below and list every character who speaks or drives the plot. Do not repeat characters already in the library unless the text gives them a new alias.

Novel text:
{input}

Output JSON only, shaped like:
{"characters": [{"name": "Name", "aliases": ["alias"], "introduction": "one-line introduction", "gender": "male|female|unknown", "age_range": "age range", "role_level": "protagonist|supporting|minor", "appearance": "appearance notes"}]}
""",
}

SELECT_LOCATION = {
    "zh": """你是一名场景设计师，需要从小说原文中提取主要场景。

已有场景库：{locations_lib_name}

小说原文：
{input}

只输出 JSON，格式如下：
{"locations": [{"name": "场景名", "summary": "场景概述", "descriptions": ["视觉描述"]}]}
""",
    "en": """You are a production designer. Extract the main locations from the novel text.

Existing location library: {locations_lib_name}

Novel text:
{input}

Output JSON only, shaped like:
{"locations": [{"name": "Location", "summary": "short summary", "descriptions": ["visual description"]}]}
""",
}

CLIP = {
    "zh": """你是一名剪辑策划，需要把小说原文切分为适合短视频的片段。

可用场景：{locations_lib_name}
可用角色：{characters_lib_name}

要求：
1. 片段必须按原文顺序排列，覆盖全部剧情。
2. start 和 end 必须逐字摘自原文，分别是片段的第一句和最后一句。
3. 每个片段只发生在一个场景。

小说原文：
{input}

只输出 JSON 数组：
[{"start": "片段开头原文", "end": "片段结尾原文", "summary": "片段概要", "location": "场景名", "characters": ["角色名"]}]
""",
    "en": """You are an editor splitting novel text into clips suitable for short videos.

Known locations: {locations_lib_name}
Known characters: {characters_lib_name}

Rules:
1. Clips follow the order of the source text and cover the whole story.
2. "start" and "end" are copied verbatim from the source: the first and the last sentence of the clip.
3. Each clip takes place in a single location.

Novel text:
{input}

Output a JSON array only:
[{"start": "verbatim opening", "end": "verbatim ending", "summary": "clip summary", "location": "Location", "characters": ["Name"]}]
""",
}

SCREENPLAY_CONVERSION = {
    "zh": """你是一名编剧，请把下面的小说片段改写为分场剧本。

片段编号：{clip_id}
可用场景：{locations_lib_name}
可用角色：{characters_lib_name}
角色简介：
{characters_introduction}

片段原文：
{clip_content}

只输出 JSON，格式如下：
{"scenes": [{"heading": "场景标题", "location": "场景名", "time": "时间", "content": [{"type": "action|dialogue|voiceover", "character": "角色名", "text": "内容"}]}]}
""",
    "en": """You are a screenwriter. Rewrite the novel clip below as a scene-by-scene screenplay.

Clip id: {clip_id}
Known locations: {locations_lib_name}
Known characters: {characters_lib_name}
Character introductions:
{characters_introduction}

Clip text:
{clip_content}

Output JSON only, shaped like:
{"scenes": [{"heading": "scene heading", "location": "Location", "time": "time of day", "content": [{"type": "action|dialogue|voiceover", "character": "Name", "text": "line"}]}]}
""",
}
