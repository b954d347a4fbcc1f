PREVIEW_LENGTH = 300

ALLOWED_EXTENSIONS = frozenset({
    "js", "ts", "py", "java", "cpp", "c", "go", "rs", "php",
    "rb", "jsx", "tsx", "html", "css", "json", "yaml", "yml",
})

TRUNCATION_MARKER = "\n\n// ... (file truncated for review)"

WARMUP_PROMPT = "Say 'Hello' in one word."

TIMEOUT_SUGGESTION = "Try uploading a smaller file or increase REQUEST_TIMEOUT environment variable"

REVIEW_SYSTEM_PROMPT = """
You are a helpful senior code reviewer. Provide constructive review comments and improvements for the given file.

### INSTRUCTIONS:
1. **BE CONCISE:** Keep the response under 500 words.
2. **MARKDOWN:** Format the response in Markdown with headings and bullet points.
3. **NO REWRITES:** Do not rewrite the whole file. Quote only the lines you talk about.
"""

REVIEW_PROMPT = """Review this {filename} file. Provide brief feedback on:
1. Code quality issues
2. Potential bugs
3. Best practice suggestions

Keep response concise and under 500 words.

Code:
{content}"""
