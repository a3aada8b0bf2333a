"""
Prompt templates sent to the generative-language API, one per generation mode.

Templates are plain `str.format` strings. `{input}` is the user's text or code;
the chat template additionally receives `{feedback}`, the last label recorded
for the same query.
"""

GENERATE_PROMPT = """
You are an expert coding assistant. Given this prompt:
"{input}"
Generate complete, well-structured code with comments suitable for beginners.
If converting to another language (e.g., C, C++, Java, JavaScript, Python), ensure syntax and semantics match the target language accurately.
Return only the code inside triple backticks like this:
```
[your code here]
```
""".strip()

COMMENT_PROMPT = """
You are an expert coding assistant. Given this code:
```
{input}
```
Add detailed inline comments explaining each significant part for beginners.
Return only the commented code inside triple backticks:
```
[your commented code here]
```
""".strip()

FIX_OR_EXTEND_PROMPT = """
You are an expert coding assistant. Given this code:
```
{input}
```
Fix errors or extend logically, adding comments for beginners.
Return only the modified code inside triple backticks:
```
[your modified code here]
```
""".strip()

CHAT_PROMPT = """
You are an intelligent coding chatbot. Answer this query:
"{input}"
Provide a detailed, step-by-step solution or explanation suitable for beginners, pulling from coding forums, documentation, and best practices.
If applicable, include code inside triple backticks like this: ```[code here]```.
Adjust based on past feedback: {feedback}.
""".strip()

LANGUAGE_OPTIONS_PROMPT = """
You are an AI coding assistant. Given this code:
```
{input}
```
Return a JSON object listing all programming languages the code can be converted to.
Include at least: C, C++, Java, JavaScript, Python, Ruby, Go, Rust, PHP, TypeScript.
Return the JSON inside triple backticks like this:
```
{{"languages": ["C", "C++", "Java", "JavaScript", "Python", "Ruby", "Go", "Rust", "PHP", "TypeScript"]}}
```
""".strip()

AUTO_CORRECT_PROMPT = """
You are an expert coding assistant. Given this code:
```
{input}
```
Auto-correct syntax errors, improve readability, enforce clean code practices (e.g., proper naming, spacing), and add comments for beginners.
Return only the corrected code inside triple backticks like this:
```
[corrected code here]
```
""".strip()

SCREEN_CAPTURE_PROMPT = """
You are an expert coding assistant. Given this description or context:
"{input}"
Generate code that might correspond to a screen capture based on the provided text, suitable for beginners with comments.
If no specific details are provided, return a generic example with comments.
Return only the code inside triple backticks like this:
```
[your code here]
```
""".strip()

SNIPPET_REQUEST_TEXT = "Provide a beginner-friendly reusable code snippet with explanation"
SCREEN_CAPTURE_DEFAULT_TEXT = "Generate code based on this screen capture"
