"""Keyword dictionaries used by transcript analytics.

All entries are lowercase. Topic and skill keywords match as substrings;
indicator words match as whole words.
"""

import re
from typing import Dict, List, Pattern, Tuple

UNIVERSAL_TOPIC_KEYWORDS: Dict[str, List[str]] = {
    'communication': ['explain', 'describe', 'tell me', 'walk through', 'clarify', 'elaborate', 'detail'],
    'problem-solving': ['approach', 'solution', 'challenge', 'resolve', 'handle', 'tackle', 'overcome'],
    'experience': ['worked', 'responsible', 'involved', 'participated', 'contributed', 'achieved', 'accomplished'],
    'leadership': ['led', 'managed', 'coordinated', 'supervised', 'guided', 'directed', 'organized'],
    'collaboration': ['team', 'together', 'collaborated', 'cooperated', 'partnership', 'group', 'colleague'],
    'learning': ['learned', 'studied', 'developed', 'improved', 'grew', 'acquired', 'mastered'],
    'creativity': ['innovative', 'creative', 'designed', 'invented', 'original', 'unique', 'novel'],
    'analytical': ['analyzed', 'evaluated', 'assessed', 'examined', 'investigated', 'research', 'data'],
}

TECHNICAL_TOPIC_KEYWORDS: Dict[str, List[str]] = {
    'technical-architecture': ['architecture', 'system design', 'scalability', 'microservices', 'distributed systems'],
    'programming': ['algorithm', 'code', 'programming', 'development', 'coding', 'software', 'implementation'],
    'database': ['database', 'sql', 'queries', 'data modeling', 'mongodb', 'mysql', 'postgresql'],
    'web-development': ['frontend', 'backend', 'api', 'web', 'javascript', 'react', 'node', 'html', 'css'],
    'devops': ['deployment', 'docker', 'kubernetes', 'cloud', 'aws', 'ci/cd', 'infrastructure'],
    'testing': ['testing', 'quality assurance', 'debugging', 'unit tests', 'integration tests'],
    'security': ['security', 'authentication', 'authorization', 'encryption', 'cybersecurity'],
}

INDUSTRY_TOPIC_KEYWORDS: Dict[str, List[str]] = {
    'sales-marketing': ['sales', 'marketing', 'customer', 'revenue', 'campaigns', 'lead generation'],
    'education': ['teaching', 'student', 'curriculum', 'lesson', 'learning objectives', 'assessment'],
    'healthcare': ['patient', 'medical', 'clinical', 'treatment', 'diagnosis', 'healthcare'],
    'finance': ['financial', 'budget', 'accounting', 'revenue', 'cost', 'profit', 'investment'],
    'operations': ['process', 'efficiency', 'workflow', 'logistics', 'supply chain', 'optimization'],
}

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    **UNIVERSAL_TOPIC_KEYWORDS,
    **TECHNICAL_TOPIC_KEYWORDS,
    **INDUSTRY_TOPIC_KEYWORDS,
}

CONFIDENCE_INDICATORS = [
    'confident', 'definitely', 'absolutely', 'certainly', 'sure',
    'know', 'clearly', 'obviously', 'believe', 'convinced',
]

UNCERTAINTY_INDICATORS = [
    'think', 'maybe', 'perhaps', 'guess', 'probably', 'might',
    'not sure', "don't know", 'uncertain', 'confused', 'unsure',
]

ENGAGEMENT_INDICATORS = [
    'interesting', 'excited', 'passionate', 'love', 'enjoy', 'motivate',
    'challenge', 'opportunity', 'growth', 'learn', 'develop', 'improve',
]

COMPLEXITY_MARKERS = [',', ';', 'because', 'however', 'therefore', 'although']

EXAMPLE_MARKERS = ['example', 'for instance', 'such as', 'like when']

UNIVERSAL_SKILLS: Dict[str, List[str]] = {
    'Communication': ['explained', 'presented', 'discussed', 'articulated', 'conveyed', 'described'],
    'Problem Solving': ['solved', 'resolved', 'figured out', 'troubleshot', 'addressed', 'debugged'],
    'Leadership': ['led', 'managed', 'coordinated', 'supervised', 'guided', 'mentored'],
    'Teamwork': ['collaborated', 'worked together', 'team effort', 'group project', 'partnered'],
    'Adaptability': ['adapted', 'flexible', 'adjusted', 'changed approach', 'pivoted', 'learned'],
    'Critical Thinking': ['analyzed', 'evaluated', 'assessed', 'considered', 'examined', 'researched'],
    'Time Management': ['prioritized', 'organized', 'scheduled', 'deadline', 'efficient', 'planned'],
    'Learning Ability': ['learned', 'studied', 'researched', 'developed', 'acquired', 'mastered'],
}

TECHNICAL_SKILLS: Dict[str, List[str]] = {
    'Programming': ['javascript', 'python', 'java', 'typescript', 'react', 'node.js', 'coding', 'programming'],
    'Database Management': ['sql', 'mongodb', 'database', 'queries', 'data modeling', 'mysql', 'postgresql'],
    'System Design': ['architecture', 'scalability', 'microservices', 'api design', 'distributed systems'],
    'DevOps & Infrastructure': ['docker', 'kubernetes', 'aws', 'cloud', 'deployment', 'ci/cd', 'monitoring'],
    'Software Development': ['agile', 'scrum', 'testing', 'debugging', 'version control', 'git', 'code review'],
    'Web Development': ['html', 'css', 'frontend', 'backend', 'responsive design', 'web apis', 'frameworks'],
    'Data & Analytics': ['machine learning', 'data analysis', 'algorithms', 'statistics', 'visualization'],
    'Security': ['cybersecurity', 'encryption', 'authentication', 'authorization', 'secure coding'],
}

INDUSTRY_SKILLS: Dict[str, List[str]] = {
    'Sales & Marketing': ['sales', 'marketing', 'customer acquisition', 'lead generation', 'crm', 'campaigns'],
    'Education & Training': ['teaching', 'curriculum', 'student engagement', 'lesson planning', 'assessment'],
    'Healthcare': ['patient care', 'medical', 'clinical', 'diagnosis', 'treatment', 'healthcare'],
    'Finance & Accounting': ['budgeting', 'financial analysis', 'accounting', 'auditing', 'compliance'],
    'Human Resources': ['recruitment', 'employee relations', 'performance management', 'hr policies'],
    'Operations & Logistics': ['supply chain', 'inventory', 'logistics', 'process improvement', 'operations'],
    'Customer Service': ['customer support', 'service excellence', 'complaint resolution', 'client relations'],
    'Creative & Design': ['design thinking', 'creative process', 'visual design', 'user experience', 'branding'],
}

BEHAVIORAL_PATTERNS: List[Tuple[str, Pattern]] = [
    ('Leadership Experience', re.compile(r'\b(led|managed|supervised|coordinated|guided|directed)\b')),
    ('Problem-Solving Approach', re.compile(r'\b(solved|resolved|fixed|addressed|troubleshot|overcame)\b')),
    ('Team Collaboration', re.compile(r'\b(team|collaborated|together|group|partnership|colleague)\b')),
    ('Initiative Taking', re.compile(r'\b(initiated|started|proposed|suggested|took charge|volunteer)\b')),
    ('Growth Mindset', re.compile(r'\b(learned|studied|developed|improved|grew|acquired)\b')),
]
