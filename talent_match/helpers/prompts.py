RANK_PROMPT = """Job Description:
{job_description}

Candidates:
{candidates}

Analyze each candidate against the job description. Return ONLY a valid JSON object with this EXACT structure:
{{
  "candidates": [
    {{
      "candidateIndex": <number, copied from the input>,
      "fullName": "<string>",
      "email": "<string or null>",
      "phone": "<string or null>",
      "location": "<string or null>",
      "jobTitle": "<string or null>",
      "yearsOfExperience": <number or null>,
      "matchScore": <number 0-100>,
      "reasoning": "<string max 80 chars>",
      "strengths": ["<string>", "<string>", "<string>"],
      "concerns": ["<string>", "<string>", "<string>"]
    }}
  ]
}}

IMPORTANT: one entry per input candidate, reasoning max 80 chars, max 3 items in strengths/concerns arrays.
"""

EXTRACT_PROMPT = """Extract all information from this resume and return a JSON object with these fields:
{
  "full_name": "string",
  "email": "string",
  "phone_number": "string",
  "location": "string",
  "job_title": "string",
  "years_of_experience": number,
  "sector": "string",
  "skills": ["array", "of", "strings"],
  "experience": "string (summary of work experience)",
  "education": "string (summary of education)",
  "resume_text": "string (full extracted text)"
}

Return ONLY valid JSON, no markdown or explanations.
"""

OCR_PROMPT = """Transcribe all readable text from this resume document.
Return plain text only: keep the original reading order and line breaks, no markdown, no commentary.
"""
