"""Prompt templates for the script -> storyboard workflow."""

PANEL_PLAN = {
    "zh": """你是一名分镜导演，请为下面的片段规划分镜。

角色库：{characters_lib_name}
场景库：{locations_lib_name}
角色简介：
{characters_introduction}
角色外貌：
{characters_appearance_list}
场景描述：
{locations_description}

片段原文：
{clip_content}

片段剧本（JSON）：
{clip_json}

只输出 JSON 数组，panel_number 从 1 开始连续编号：
[{"panel_number": 1, "description": "画面内容", "characters": ["角色名"], "location": "场景名", "source_text": "对应原文"}]
""",
    "en": """You are a storyboard director. Plan the panels for the clip below.

Character library: {characters_lib_name}
Location library: {locations_lib_name}
Character introductions:
{characters_introduction}
Character appearance:
{characters_appearance_list}
Location descriptions:
{locations_description}

Clip text:
{clip_content}

Clip screenplay (JSON):
{clip_json}

Output a JSON array only; panel_number starts at 1 and is consecutive:
[{"panel_number": 1, "description": "what the frame shows", "characters": ["Name"], "location": "Location", "source_text": "matching source text"}]
""",
}

CINEMATOGRAPHY = {
    "zh": """你是一名摄影指导，请为每个分镜制定摄影规则。

场景描述：
{locations_description}
角色信息：
{characters_info}

分镜列表（JSON）：
{panels_json}

只输出 JSON 数组，每个分镜一项：
[{"panel_number": 1, "composition": "构图", "lighting": "光线", "color_palette": "色调", "depth_of_field": "景深"}]
""",
    "en": """You are a director of photography. Define the photography rules for each panel.

Location descriptions:
{locations_description}
Character info:
{characters_info}

Panels (JSON):
{panels_json}

Output a JSON array only, one item per panel:
[{"panel_number": 1, "composition": "composition", "lighting": "lighting", "color_palette": "palette", "depth_of_field": "depth of field"}]
""",
}

ACTING_DIRECTION = {
    "zh": """你是一名表演指导，请为每个分镜中的角色写出表演提示。

角色信息：
{characters_info}

分镜列表（JSON）：
{panels_json}

只输出 JSON 数组：
[{"panel_number": 1, "characters": [{"name": "角色名", "acting": "动作与表情"}]}]
""",
    "en": """You are an acting coach. Write performance notes for every character in each panel.

Character info:
{characters_info}

Panels (JSON):
{panels_json}

Output a JSON array only:
[{"panel_number": 1, "characters": [{"name": "Name", "acting": "movement and expression"}]}]
""",
}

PANEL_DETAIL = {
    "zh": """你是一名分镜师，请把分镜规划扩写成可直接用于视频生成的镜头描述。

片段原文：
{clip_content}

分镜规划（JSON）：
{panel_json}

摄影规则（JSON）：
{photography_json}

表演提示（JSON）：
{acting_json}

只输出 JSON 对象：
{"shot_type": "景别", "camera_move": "运镜", "description": "画面描述", "video_prompt": "视频生成提示词", "duration": 3}
""",
    "en": """You are a storyboard artist. Expand the planned panel into a shot description ready for video generation.

Clip text:
{clip_content}

Planned panel (JSON):
{panel_json}

Photography rules (JSON):
{photography_json}

Acting notes (JSON):
{acting_json}

Output a JSON object only:
{"shot_type": "shot size", "camera_move": "camera movement", "description": "frame description", "video_prompt": "video generation prompt", "duration": 3}
""",
}

VOICE_ANALYSIS = {
    "zh": """你是一名配音导演，请从原文中提取需要配音的台词，并匹配到分镜。

角色库：{characters_lib_name}
角色简介：
{characters_introduction}

原文：
{input}

分镜（JSON）：
{storyboard_json}

只输出 JSON 数组，lineIndex 从 1 开始：
[{"lineIndex": 1, "speaker": "角色名", "content": "台词", "emotionStrength": 0.5, "matchedPanel": {"storyboardId": "分镜组 id", "panelIndex": 1}}]
没有对应分镜时 matchedPanel 为 null。
""",
    "en": """You are a voice director. Extract the lines that need voice-over from the text and match them to panels.

Character library: {characters_lib_name}
Character introductions:
{characters_introduction}

Text:
{input}

Storyboards (JSON):
{storyboard_json}

Output a JSON array only; lineIndex starts at 1:
[{"lineIndex": 1, "speaker": "Name", "content": "line", "emotionStrength": 0.5, "matchedPanel": {"storyboardId": "storyboard id", "panelIndex": 1}}]
Use null for matchedPanel when no panel fits.
""",
}
