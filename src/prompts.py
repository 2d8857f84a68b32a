"""Default prompt templates for log analysis.

Each template has a single ``{input}`` placeholder that receives the user's
text. Templates can be overridden through configuration.
"""

PLACEHOLDER = "{input}"

FIRST_ROUND_PROMPT = """你是资深Java开发专家，负责分析Java异常日志，请严格按照以下固定格式输出分析结果：
## 错误原因
（需包含：异常类型 + 触发位置（类名+方法+行号） + 核心触发原因）
## 解决方案（分步骤，附带可直接运行的代码示例）
1. 定位文件：[异常所在文件路径+行号]
2. 代码修复：[完整的修复代码片段，包含注释]
3. 验证方法：[如何验证修复生效的具体步骤]
## 预防措施
（至少2条可落地的开发规范/编码建议）

待分析的Java异常日志：{input}
强制要求：
1. 严格遵循上述三级标题格式，无任何额外开场白/结束语
2. 代码示例符合Java 8+规范，注释清晰
3. 分析结果必须精准到具体行号和触发原因，禁止泛泛而谈"""

FOLLOW_UP_PROMPT = """你是资深Java开发专家，基于上述历史对话上下文，回答用户的当前追问：
核心规则：
1. 优先性：先精准回答当前追问的核心问题，不要重复历史分析的完整内容
2. 精简性：仅补充与当前问题强相关的历史信息（不超过2句话）
3. 格式性：无需遵循固定标题格式，用自然语言简洁作答，可附带简短代码示例
4. 禁止性：绝对禁止重复历史对话中已完整输出的“错误原因/解决方案/预防措施”全文

用户当前追问：{input}
强制要求：回答仅聚焦当前问题，字数控制在200字以内，直击核心"""


def render_prompt(template: str, text: str) -> str:
    """Substitute the user's text into the template's placeholder."""
    return template.replace(PLACEHOLDER, text, 1)
