"""Prompt templates for the worldbook agent.

Every planner request starts with the same background section describing
character cards and worldbooks, followed by a task-specific template.  The
templates are ``langchain_core`` ``PromptTemplate`` objects; dynamic values
(summaries, tool XML, user text) are substituted verbatim, so they may contain
braces or markup freely.
"""

from __future__ import annotations

from langchain_core.prompts import PromptTemplate

BACKGROUND_KNOWLEDGE = """\
## BACKGROUND: CHARACTER CARDS AND WORLDBOOKS

### Character card
A character card defines a roleplay scenario. It may describe one character or
a whole world/story. Every field below is REQUIRED:
- name: title of the card (story, scenario or character name)
- description: physical details, or the world setting for story cards
- personality: behavioural traits, or tone and key NPCs for story cards
- scenario: the current situation or state of the world
- first_mes: an immersive opening of 200-800 words (scene, atmosphere,
  introduction, first lines)
- mes_example: a multi-paragraph example message (300-800 words) mixing
  narration, inner monologue, dialogue and a <status> block with live data
- alternate_greetings: 3-5 alternative openings of 150-600 words each
- creator_notes: usage guidelines and creator insights
- tags: card type, genre and descriptors

### Worldbook
A worldbook is a keyword-activated knowledge base. Each entry has keys
(trigger terms), keysecondary, content, comment, insert_order, position,
constant and selective. Four categories are produced, in this order:
1. STATUS: one constant entry (insert_order 1) rendering a real-time game
   interface: time, place, environment, character panels, statistics and
   available actions, wrapped in <status></status>.
2. USER_SETTING: one constant entry (insert_order 2) profiling the player
   character with a deep Markdown hierarchy, wrapped in
   <user_setting></user_setting>.
3. WORLD_VIEW: one constant entry (insert_order 3) with the world's origins,
   systems, geography, societies and factions, wrapped in
   <world_view></world_view>.
4. SUPPLEMENT: at least 5 non-constant entries (insert_order 10+, position 2),
   each expanding one proper noun taken from WORLD_VIEW and keyed by it.

The character card is completed before the worldbook is started. Both must
stay consistent in tone, names and facts.
"""


DECOMPOSITION_TEMPLATE = PromptTemplate.from_template(
    """{background}

You are an expert task planner for character card and worldbook generation.
Analyze the user's objective and build an ordered task queue.

USER OBJECTIVE: {main_objective}

GUIDELINES:
1. Decide whether the request builds on existing material (anime, novels,
   games, films, history). If so, plan research with the SEARCH tool.
2. Decide how clear the story direction is (genre, tone, focus). If it is not
   clear, plan clarification with the ASK_USER tool.
3. At least one sub-problem MUST ask the user for clarification and at least
   one MUST research external material.
4. Create between {min_tasks} and {max_tasks} tasks. Each task has between 2
   and {max_sub_problems} concrete, tool-agnostic sub-problems completed in
   order.
5. Complete the character card before the worldbook; then create STATUS,
   USER_SETTING, WORLD_VIEW and at least 5 SUPPLEMENT entries.

Respond with exactly this XML:
<task_decomposition>
  <analysis>
    <real_world_content_detected>true/false</real_world_content_detected>
    <real_world_details>referenced material, if any</real_world_details>
    <story_clarity_level>clear/moderate/vague</story_clarity_level>
    <unclear_aspects>aspects that need clarification, if any</unclear_aspects>
  </analysis>
  <initial_tasks>
    <task>
      <description>task description</description>
      <reasoning>why the task is needed</reasoning>
      <sub_problems>
        <sub_problem>
          <description>specific actionable step</description>
          <reasoning>why the step matters</reasoning>
        </sub_problem>
      </sub_problems>
    </task>
  </initial_tasks>
  <task_strategy>overall approach</task_strategy>
</task_decomposition>"""
)


DECISION_TEMPLATE = PromptTemplate.from_template(
    """{background}

<prompt>
  <system_role>
    You are the planning agent of a character and world-building assistant.
    Choose the single best next action, then rewrite the current task so the
    remaining work reflects what you have learned.
  </system_role>

  <tools_schema>
{available_tools}
  </tools_schema>

  <main_objective>{main_objective}</main_objective>

  <completed_tasks>
{completed_tasks}
  </completed_tasks>

  <existing_knowledge>
{knowledge_base}
  </existing_knowledge>

  <recent_conversation>
{recent_conversation}
  </recent_conversation>

  <current_task_queue>
{task_queue_status}
  </current_task_queue>

  <current_sub_problem>{current_sub_problem}</current_sub_problem>

  <current_generation_output>
    <character_progress>
{character_progress}
    </character_progress>
    <worldbook_progress>
{worldbook_progress}
    </worldbook_progress>
    <completion_status>
{completion_status}
    </completion_status>
  </current_generation_output>

  <guidelines>
    - Fix any problem reported in recent TOOL FAILURE or quality evaluation
      messages before anything else.
    - Use ASK_USER early for fundamental uncertainty about genre, tone or
      focus; offer 2-4 options.
    - Use SEARCH only for existing works or factual references.
    - Build the character with CHARACTER until every required field is filled;
      only then use STATUS, USER_SETTING, WORLD_VIEW and SUPPLEMENT in order.
    - SUPPLEMENT needs a non-empty keys array of nouns from WORLD_VIEW.
    - Use REFLECT when the queue is empty but the output is incomplete.
    - Use COMPLETE only when everything is finished.
    - The task adjustment may rewrite the description and propose at most 3
      sub-problems, never more than the task currently has. Leave a field
      empty to keep it unchanged.
    - Wrap JSON parameter values in CDATA.
  </guidelines>

  <output_format>
<think>step-by-step reasoning about the current state</think>
<task_adjustment>
  <reasoning>why the task is rewritten</reasoning>
  <task_description>new task description</task_description>
  <new_subproblems>step one | step two | step three</new_subproblems>
</task_adjustment>
<action>TOOL_NAME</action>
<parameters>
  <param_name>plain value, or <![CDATA[json value]]></param_name>
</parameters>
  </output_format>
</prompt>"""
)


FAILURE_ANALYSIS_TEMPLATE = PromptTemplate.from_template(
    """{background}

You are analyzing why a tool call made by the planning agent failed. Explain
the root cause so the next decision can avoid the same mistake.

<failure>
  <tool>{tool}</tool>
  <expected_parameters>
{parameter_schema}
  </expected_parameters>
  <actual_parameters>{actual_parameters}</actual_parameters>
  <error>{error}</error>
  <planner_reasoning>{reasoning}</planner_reasoning>
</failure>

<context>
  <main_objective>{main_objective}</main_objective>
  <current_task>{current_task}</current_task>
  <recent_conversation>
{recent_conversation}
  </recent_conversation>
</context>

Respond with exactly this XML:
<failure_analysis>
  <root_cause>the fundamental reason for the failure</root_cause>
  <parameter_analysis>which parameters were wrong or missing</parameter_analysis>
  <planner_issue>what the planner misunderstood</planner_issue>
  <correct_approach>how the call should have been made</correct_approach>
  <prevention>how to avoid this in future decisions</prevention>
  <impact>effect on overall progress</impact>
</failure_analysis>"""
)


def render_decomposition_prompt(
    main_objective: str,
    *,
    min_tasks: int = 5,
    max_tasks: int = 8,
    max_sub_problems: int = 5,
) -> str:
    return DECOMPOSITION_TEMPLATE.format(
        background=BACKGROUND_KNOWLEDGE,
        main_objective=main_objective,
        min_tasks=min_tasks,
        max_tasks=max_tasks,
        max_sub_problems=max_sub_problems,
    )


def render_decision_prompt(**sections: str) -> str:
    """Render the decision prompt from the named context sections."""
    return DECISION_TEMPLATE.format(background=BACKGROUND_KNOWLEDGE, **sections)


def render_failure_analysis_prompt(**sections: str) -> str:
    return FAILURE_ANALYSIS_TEMPLATE.format(background=BACKGROUND_KNOWLEDGE, **sections)
