"""
HTML rendering for question papers and answer keys
"""
from html import escape

from papergen.schemas.paper import GeneratedPaper, Question

_BASE_CSS = """
    @page { margin: 2.5cm; }
    body {
      font-family: 'Times New Roman', Times, serif;
      line-height: 1.5;
      color: #000;
      max-width: 850px;
      margin: 0 auto;
      padding: 40px;
      background: #fff;
    }
    .header {
      text-align: center;
      border-bottom: 2px solid #000;
      padding-bottom: 20px;
      margin-bottom: 30px;
    }
    .header h1 {
      margin: 0 0 10px 0;
      font-size: 24px;
      text-transform: uppercase;
      letter-spacing: 1px;
    }
    .header .subject { font-size: 18px; font-weight: bold; margin-bottom: 5px; }
    .meta-info {
      display: flex;
      justify-content: space-between;
      margin-bottom: 20px;
      font-weight: bold;
      border-bottom: 1px solid #ccc;
      padding-bottom: 10px;
    }
    .instructions { margin-bottom: 30px; font-style: italic; }
    .section { margin-bottom: 40px; }
    .section-title {
      font-size: 16px;
      font-weight: bold;
      text-transform: uppercase;
      margin-bottom: 15px;
      background: #f0f0f0;
      padding: 5px 10px;
      border-left: 4px solid #000;
    }
    .error {
      color: #d32f2f;
      font-style: italic;
      padding: 10px;
      background: #ffebee;
      border-left: 4px solid #d32f2f;
    }
"""

_PAPER_CSS = """
    .question { margin-bottom: 20px; page-break-inside: avoid; display: flex; gap: 10px; }
    .q-num { font-weight: bold; min-width: 25px; }
    .q-text { flex-grow: 1; }
    .q-marks { font-weight: bold; white-space: nowrap; margin-left: 10px; }
"""

_ANSWER_KEY_CSS = """
    .header h1 { color: #d32f2f; }
    .section-title { background: #ffebee; border-left-color: #d32f2f; color: #b71c1c; }
    .question { margin-bottom: 25px; page-break-inside: avoid; }
    .q-header { display: flex; gap: 10px; font-weight: bold; margin-bottom: 8px; color: #555; }
    .q-text { margin-bottom: 10px; font-style: italic; }
    .answer-box { background: #f1f8e9; border: 1px solid #8bc34a; padding: 15px; border-radius: 4px; }
    .answer-label { font-weight: bold; color: #2e7d32; margin-bottom: 5px; display: block; }
"""


def _format_marks(marks: float) -> str:
    return str(int(marks)) if float(marks).is_integer() else f"{marks:g}"


def _document(title: str, css: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <title>{escape(title)}</title>
  <style>{css}</style>
</head>
<body>
{body}
</body>
</html>
"""


def _meta(paper: GeneratedPaper) -> str:
    return f"""  <div class="meta-info">
    <div>Time: {escape(paper.duration)}</div>
    <div>Max. Marks: {paper.total_marks}</div>
  </div>"""


def _paper_question(question: Question) -> str:
    return f"""      <div class="question">
        <div class="q-num">{question.id}.</div>
        <div class="q-text">{escape(question.text)}</div>
        <div class="q-marks">[{_format_marks(question.marks)}]</div>
      </div>"""


def _answer_question(question: Question) -> str:
    return f"""      <div class="question">
        <div class="q-header"><span>Q{question.id}.</span><span>[{_format_marks(question.marks)} Marks]</span></div>
        <div class="q-text">{escape(question.text)}</div>
        <div class="answer-box">
          <span class="answer-label">Model Answer:</span>
          {escape(question.answer or "No answer provided.")}
        </div>
      </div>"""


def render_paper_html(paper: GeneratedPaper) -> str:
    """Printable question paper"""
    sections = []
    for section in paper.sections:
        instructions = (
            f'      <p class="instructions">{escape(section.instructions)}</p>\n' if section.instructions else ""
        )
        questions = "\n".join(_paper_question(q) for q in section.questions) or (
            '      <p class="error">No questions generated for this section</p>'
        )
        sections.append(
            f'    <div class="section">\n'
            f'      <div class="section-title">{escape(section.name)}</div>\n'
            f"{instructions}{questions}\n"
            f"    </div>"
        )

    body = f"""  <div class="header">
    <h1>{escape(paper.title)}</h1>
    <div class="subject">{escape(paper.subject_name)}</div>
  </div>
{_meta(paper)}
  <div class="instructions">
    <strong>Instructions to Candidates:</strong><br>
    {escape(paper.instructions)}
  </div>
{chr(10).join(sections) or '  <p class="error">No sections were generated. Please try regenerating the paper.</p>'}
  <div style="text-align: center; margin-top: 50px; border-top: 1px solid #000; padding-top: 10px;">
    *** END OF PAPER ***
  </div>"""
    return _document(paper.title, _BASE_CSS + _PAPER_CSS, body)


def render_answer_key_html(paper: GeneratedPaper) -> str:
    """Evaluator's answer key: every question with its model answer"""
    sections = []
    for section in paper.sections:
        questions = "\n".join(_answer_question(q) for q in section.questions) or (
            '      <p class="error">No questions generated for this section</p>'
        )
        sections.append(
            f'    <div class="section">\n'
            f'      <div class="section-title">{escape(section.name)}</div>\n'
            f"{questions}\n"
            f"    </div>"
        )

    body = f"""  <div class="header">
    <h1>ANSWER KEY</h1>
    <div class="subject">{escape(paper.subject_name)}</div>
  </div>
{_meta(paper)}
{chr(10).join(sections) or '  <p class="error">No sections were generated.</p>'}
  <div style="text-align: center; margin-top: 50px; border-top: 1px solid #000; padding-top: 10px; color: #d32f2f;">
    *** CONFIDENTIAL - FOR EVALUATOR USE ONLY ***
  </div>"""
    return _document(f"{paper.title} - Answer Key", _BASE_CSS + _ANSWER_KEY_CSS, body)
