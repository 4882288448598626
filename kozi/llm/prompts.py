SYSTEM_KOZI_AGENT = """You are KOZI DASHBOARD AGENT, the official virtual assistant for Kozi users (job seekers).

CORE BEHAVIOR:
- Always greet users warmly, acknowledging they have a Kozi account
- Help with profile completion, job applications, and CV preparation
- Provide step-by-step guidance
- Be friendly, encouraging, and professional
- End responses with motivation about profile completion

SCOPE: Only answer Kozi-related questions about:
- Profile completion/updating
- Document uploads (ID, CV, profile photo)
- Job searching and applications
- CV creation and improvement

If unrelated question -> redirect: "Please contact our Support Team: support@kozi.rw | +250 788 123 456\""""

CONTEXT_SECTION = "\nRELEVANT KOZI INFORMATION:\n{context}\n"

USER_STATUS_SECTION = "\nUSER STATUS:\n- Profile completion: {completion:.0f}%\n"

MISSING_FIELDS_LINE = "- Missing profile fields: {fields}\n"

JSON_ONLY_SUFFIX = "\n\nIMPORTANT: Return ONLY valid JSON, no additional text."

# --- CV generation: what the user sees at each step ---
CV_STEP_PROMPTS = {
    "contact_info": (
        "Let's start creating your professional CV!\n\n"
        "First, I need your contact information:\n"
        "- Full Name\n- Phone Number\n- Email Address\n- Location (City)\n\n"
        "Please provide these details."
    ),
    "professional_summary": (
        "Great! Now, let's write your professional summary.\n\n"
        "In 2-3 sentences, tell me:\n"
        "- Your current role or profession\n- Your key skills\n- Your career goals\n\n"
        "Example: 'Experienced house manager with 5+ years in maintaining clean, organized homes. "
        "Skilled in deep cleaning, laundry care, and household organization. "
        "Seeking to provide exceptional service to families in Kigali.'"
    ),
    "work_experience": (
        "Perfect! Now let's add your work experience.\n\n"
        "For each job, provide:\n"
        "- Job Title\n- Company/Employer Name\n- Dates (e.g., 'Jan 2020 - Present')\n"
        "- Key responsibilities and achievements\n\n"
        "You can list multiple jobs, starting with the most recent."
    ),
    "education": (
        "Excellent work history! Now let's add your education.\n\n"
        "Provide:\n"
        "- Highest level of education\n- Institution name\n- Year completed (or expected)\n"
        "- Any relevant coursework or honors\n\n"
        "Example: 'High School Diploma, Kigali Secondary School, 2018'"
    ),
    "skills": (
        "Great! Now let's list your relevant skills.\n\n"
        "List 5-10 skills related to your job category:\n"
        "- Technical skills\n- Soft skills\n- Job-specific abilities\n\n"
        "Example: 'Deep cleaning, Laundry & ironing, Time management, Attention to detail, Customer service'"
    ),
    "certifications": (
        "Almost done! Do you have any certifications or training?\n\n"
        "If yes, provide:\n- Certification name\n- Issuing organization\n- Date obtained\n\n"
        "If none, just say 'None' or 'Skip'"
    ),
    "languages": (
        "Final step! What languages do you speak?\n\n"
        "List languages and proficiency level:\n- Language (Proficiency)\n\n"
        "Example: 'Kinyarwanda (Native), English (Fluent), French (Intermediate)'"
    ),
}

# --- CV generation: what the model is told to return at each step ---
CV_STEP_PARSERS = {
    "contact_info": """Extract contact information from the user's message and return a JSON object with:
{
  "full_name": "string",
  "phone": "string",
  "email": "string",
  "location": "string"
}
Use null for anything the user did not give.""",
    "professional_summary": """Create a professional 2-3 sentence summary based on the user's input. Return JSON:
{
  "summary": "professional summary text"
}""",
    "work_experience": """Extract work experience and return JSON:
{
  "experiences": [
    {
      "title": "string",
      "company": "string",
      "dates": "string",
      "responsibilities": ["string", "string"]
    }
  ]
}""",
    "education": """Extract education information and return JSON:
{
  "education": [
    {
      "level": "string",
      "institution": "string",
      "year": "string",
      "details": "string"
    }
  ]
}""",
    "skills": """Extract skills list and return JSON:
{
  "skills": ["skill1", "skill2", "skill3"]
}""",
    "certifications": """Extract certifications and return JSON:
{
  "certifications": [
    {
      "name": "string",
      "issuer": "string",
      "date": "string"
    }
  ]
}
If user says "none" or "skip", return an empty array.""",
    "languages": """Extract languages and proficiency levels and return JSON:
{
  "languages": [
    {
      "language": "string",
      "proficiency": "string"
    }
  ]
}""",
}

CV_RESUME_PROMPT = (
    "I see you already have a CV in progress. Would you like to continue from where "
    "you left off, or start fresh?\n\nReply 'continue' to pick up again or 'start over' to restart."
)
