"""
Prompts Module - Prompt templates for AI outline extraction.
===========================================================

The model receives the stored course-content HTML and must answer with the
canonical outline JSON only. English keys are requested, but replies using
the Chinese keys are accepted by CourseOutline.from_json as well.
"""

SYSTEM_PROMPT = (
    "你是一个帮助解析HTML结构的专业助手，擅长从HTML中提取结构化信息并返回JSON格式数据。"
)

OUTLINE_PROMPT_TEMPLATE = """我需要你从以下HTML代码中提取课程大纲信息。
HTML代码描述了一个在线课程的章节和讲座结构。
请提取所有章节和每个章节下的讲座信息，包括标题、时长，以及讲座是否可以免费预览。

请以以下JSON格式返回：
{{
  "chapters": [
    {{
      "title": "章节标题",
      "duration": "章节总时长",
      "lectures": [
        {{
          "title": "讲座标题",
          "duration": "讲座时长",
          "preview": false
        }}
      ]
    }}
  ]
}}

HTML代码：
{course_html}

请只返回提取后的JSON数据，不要有任何其他文字说明。"""


def build_outline_prompt(course_html: str, max_chars: int = 0) -> str:
    """
    Build the user prompt for one course.

    Args:
        course_html: Raw course-content HTML
        max_chars: Truncate the HTML to this many characters (0 = no limit)

    Returns:
        Prompt text
    """
    if max_chars and len(course_html) > max_chars:
        course_html = course_html[:max_chars]
    return OUTLINE_PROMPT_TEMPLATE.format(course_html=course_html)
